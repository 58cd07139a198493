from django.apps import AppConfig


class WarrantyConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.warranty'

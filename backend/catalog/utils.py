from backend.core.utils import generate_document_number
from .models import Product


def generate_unique_sku(base_name=None):
    """SKU like GAMI-20240131-9F2C01AB, prefixed from the product name"""
    prefix = ''.join(ch for ch in (base_name or '').upper() if ch.isalnum())[:4] or 'PRD'
    return generate_document_number(prefix, hex_length=8, model=Product, field='sku')

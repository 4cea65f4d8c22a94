"""
Utility functions
"""
from .id_generator import generate_pickup_id, generate_credit_id
from .image_utils import detect_image_mime, to_data_url

__all__ = ['generate_pickup_id', 'generate_credit_id', 'detect_image_mime', 'to_data_url']

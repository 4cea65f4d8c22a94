"""
Short prefixed ID generator for pickup pipeline records.

Format: {prefix}_{base36_random}
- pk_xxxxxxxx  - pickup request
- cr_xxxxxxxx  - points credit

8 chars base36 = 36^8 = 2.8 trillion unique IDs per type
Total length: 11 chars (2 prefix + underscore + 8 random)
"""
import secrets

# Base36 alphabet (lowercase letters + digits)
ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)  # 36

# Valid prefixes
PREFIXES = {
    'pickup': 'pk',
    'credit': 'cr',
}


def _random_base36(length: int = 8) -> str:
    """Generate random base36 string"""
    return ''.join(ALPHABET[secrets.randbelow(BASE)] for _ in range(length))


def generate_id(entity_type: str) -> str:
    """
    Generate a new short ID for the given entity type.

    Args:
        entity_type: One of 'pickup', 'credit'

    Returns:
        Short ID like 'pk_x5b8r2yj'

    Raises:
        ValueError: If entity_type is invalid
    """
    if entity_type not in PREFIXES:
        raise ValueError(f"Invalid entity type: {entity_type}. "
                         f"Must be one of: {list(PREFIXES.keys())}")

    return f"{PREFIXES[entity_type]}_{_random_base36(8)}"


def generate_pickup_id() -> str:
    """Generate a new pickup request ID"""
    return generate_id('pickup')


def generate_credit_id() -> str:
    """Generate a new points credit ID"""
    return generate_id('credit')

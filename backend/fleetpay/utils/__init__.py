from fleetpay.utils.hashing import generate_hash, compute_signature, signature_matches
from fleetpay.utils.money import to_paise, format_rupees, parse_amount_paise

__all__ = [
    "generate_hash", "compute_signature", "signature_matches",
    "to_paise", "format_rupees", "parse_amount_paise",
]

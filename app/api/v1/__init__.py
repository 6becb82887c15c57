from app.api.v1 import billing, organizations

__all__ = [
    "billing",
    "organizations",
]

from assessment_api.models.subscriber import Subscriber

__all__ = [
    "Subscriber",
]

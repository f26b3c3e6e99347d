from vinhopay.models.user import User
from vinhopay.models.restaurant import Restaurant
from vinhopay.models.reservation import Reservation
from vinhopay.models.feedback import Feedback
from vinhopay.models.processed_message import ProcessedMessage

__all__ = ["User", "Restaurant", "Reservation", "Feedback", "ProcessedMessage"]

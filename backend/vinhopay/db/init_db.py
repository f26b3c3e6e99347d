"""Create all tables. Run on app startup."""
from vinhopay.db.base import Base
from vinhopay.db.session import engine
from vinhopay.models import user, restaurant, reservation, feedback, processed_message  # noqa: F401 - register models


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)

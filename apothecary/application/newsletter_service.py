from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from apothecary.domain.models import NewsletterSubscriber
from shared.core import get_logger
from .assessment_schemas import NewsletterSubscribe

logger = get_logger(__name__)


class NewsletterService:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, email: str):
        return self.db.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).first()

    def subscribe(self, data: NewsletterSubscribe) -> tuple[NewsletterSubscriber, bool]:
        """Upsert by email. Returns the subscriber and whether they are newly subscribed."""
        subscriber = self._find(data.email)
        if subscriber is not None:
            was_subscribed = subscriber.subscribed
            subscriber.subscribed = True
            subscriber.name = data.name or subscriber.name
            subscriber.tags = data.tags or subscriber.tags or []
            self.db.commit()
            self.db.refresh(subscriber)
            return subscriber, not was_subscribed

        subscriber = NewsletterSubscriber(email=data.email, name=data.name, subscribed=True, tags=data.tags)
        self.db.add(subscriber)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same address
            self.db.rollback()
            return self._find(data.email), False
        self.db.refresh(subscriber)
        logger.info("Newsletter subscriber added", extra={"extra_fields": {"subscriber_id": subscriber.id}})
        return subscriber, True

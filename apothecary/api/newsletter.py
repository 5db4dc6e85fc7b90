from fastapi import APIRouter, BackgroundTasks, Depends, Response
from sqlalchemy.orm import Session

from apothecary.api.orders import get_email_sender
from apothecary.application.assessment_schemas import NewsletterSubscribe, NewsletterSubscribed
from apothecary.application.newsletter_service import NewsletterService
from apothecary.infrastructure.db import get_db
from apothecary.infrastructure.email import EmailSender, notify_newsletter_welcome

router = APIRouter(prefix="/newsletter", tags=["newsletter"])

@router.post("/", response_model=NewsletterSubscribed, status_code=201)
def subscribe(
    payload: NewsletterSubscribe,
    response: Response,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    subscriber, created = NewsletterService(db).subscribe(payload)
    if not created:
        response.status_code = 200
        return NewsletterSubscribed(message="You are already subscribed!")
    background_tasks.add_task(notify_newsletter_welcome, sender, subscriber.email, subscriber.name)
    return NewsletterSubscribed(message="Thanks for subscribing! Check your inbox for wellness tips soon.")

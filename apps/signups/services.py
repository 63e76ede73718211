from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, Optional

from django.conf import settings
from django.utils import timezone

from .records import SignupDocument
from .store import DocumentStore, JsonFileDocumentStore


class SignupService:
    """Runs engine operations against a document store.

    ``session()`` is the read-modify-write cycle: it holds the store lock,
    loads the document, yields it and saves it only when the block exits
    without an exception, so a rejected operation never reaches the disk.
    """

    def __init__(self, store: DocumentStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or timezone.now

    def now(self) -> datetime:
        return self.clock()

    @contextmanager
    def session(self) -> Iterator[SignupDocument]:
        with self.store.lock:
            document = SignupDocument.from_dict(self.store.load())
            yield document
            self.store.save(document.to_dict())

    def snapshot(self) -> SignupDocument:
        with self.store.lock:
            return SignupDocument.from_dict(self.store.load())


def get_signup_service() -> SignupService:
    """Service bound to the document configured in ``SIGNUP_DOCUMENT_PATH``."""

    return SignupService(JsonFileDocumentStore(settings.SIGNUP_DOCUMENT_PATH))

import json
import logging

import firebase_admin
from firebase_admin import credentials, firestore_async
from google.cloud.firestore import AsyncClient

from ..config import Settings
from ..notifications.errors import ConfigurationError

logger = logging.getLogger(__name__)


class FirebaseConnection:
    _instance = None

    def __new__(cls, settings: Settings):
        if cls._instance is None:
            cls._instance = super(FirebaseConnection, cls).__new__(cls)
            cls._instance.initialized = False
        return cls._instance

    def __init__(self, settings: Settings):
        if self.initialized:
            return
        logger.info("FirebaseConnection.__init__() called")
        self.settings = settings
        self.app = None
        self.firestore_db = None
        self.connect()
        self.initialized = True

    def get_app(self) -> firebase_admin.App:
        return self.app

    def get_firestore_db(self) -> AsyncClient:
        return self.firestore_db

    def connect(self) -> None:
        try:
            # Reuse the default app on warm starts
            self.app = firebase_admin.get_app()
            logger.info("Retrieved existing Firebase app")
        except ValueError:
            cert_json = self.settings.firebase_secret
            if not cert_json:
                raise ConfigurationError("FIREBASE_SECRET is not defined")
            try:
                cert_dict = json.loads(cert_json)
                if isinstance(cert_dict, str):
                    cert_dict = json.loads(cert_dict)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"FIREBASE_SECRET is not valid JSON: {e.msg}")
            cred = credentials.Certificate(cert_dict)

            self.app = firebase_admin.initialize_app(
                credential=cred,
                options={"projectId": self.settings.firebase_project_id},
            )
            logger.info(f"Client initialized with project ID: {self.settings.firebase_project_id}")
        self.firestore_db = firestore_async.client(self.app)


def connect(settings: Settings) -> FirebaseConnection:
    """Initialize the Firebase app once per process and return the connection."""
    return FirebaseConnection(settings)

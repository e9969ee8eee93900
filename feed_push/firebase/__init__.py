from .firebase import FirebaseConnection, connect

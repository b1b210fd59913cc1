import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or (
        'dev-secret-key-change-in-production'
    )
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or (
        'sqlite:///marketplace.db'
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Pagination configuration
    ITEMS_PER_PAGE = 20

    # Seller quotes lapse after this many days unless expires_at is given.
    QUOTE_DEFAULT_EXPIRY_DAYS = int(
        os.environ.get('QUOTE_DEFAULT_EXPIRY_DAYS', '7'))

    # Design uploads
    DESIGN_MAX_FILE_SIZE = 10 * 1024 * 1024
    DESIGN_ALLOWED_MIME_TYPES = {
        'jpg': 'image/jpeg',
        'jpeg': 'image/jpeg',
        'png': 'image/png',
        'gif': 'image/gif',
        'svg': 'image/svg+xml',
        'pdf': 'application/pdf',
    }
    # Absolute path; empty means "<static>/uploads/designs".
    DESIGN_UPLOAD_FOLDER = os.environ.get('DESIGN_UPLOAD_FOLDER', '')
    # Must stay above DESIGN_MAX_FILE_SIZE so oversized files reach
    # validation instead of a bare 413.
    MAX_CONTENT_LENGTH = 32 * 1024 * 1024

    PAYMENT_METHODS = ('ipg', 'bank_transfer')

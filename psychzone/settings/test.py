from .base import *

DEBUG = False

SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

ALLOWED_HOSTS = ['testserver']

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
ADMIN_EMAILS = 'admin@example.com'

RAZORPAY_KEY_ID = 'rzp_test_key'
RAZORPAY_KEY_SECRET = 'rzp_test_secret'

INTERAKT_API_KEY = ''
ADMIN_WHATSAPP_NUMBER = '918968900002'

ADMIN_PASSWORD = 'letmein'

LOGGING = {'version': 1, 'disable_existing_loggers': False}

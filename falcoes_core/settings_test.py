"""
Test settings: PostgreSQL like production, in-memory cache/channels, eager Celery.

Set TEST_DB_ENGINE=sqlite for a quick run without a database server;
the concurrent-accept tests are skipped there.
"""

from decouple import config

from .settings import *  # noqa: F401,F403

DEBUG = False

if config('TEST_DB_ENGINE', default='postgresql') == 'sqlite':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'test_db.sqlite3',  # noqa: F405
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': config('DB_NAME', default='falcoes_db'),
            'USER': config('DB_USER', default='falcoes_user'),
            'PASSWORD': config('DB_PASSWORD', default='falcoes_secret'),
            'HOST': config('DB_HOST', default='localhost'),
            'PORT': config('DB_PORT', default='5432'),
            'TEST': {'NAME': config('TEST_DB_NAME', default='test_falcoes')},
        }
    }


CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

CHANNEL_LAYERS = {
    'default': {
        'BACKEND': 'channels.layers.InMemoryChannelLayer',
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

MERCADOPAGO_ACCESS_TOKEN = 'TEST-token'
PUBLIC_BASE_URL = 'https://falcoes.test'
MERCADOPAGO_WEBHOOK_SECRET = ''

# Pin business rules so tests do not depend on the environment
COURIER_ONLINE_TTL_SECONDS = 60
COURIER_PENALTY_MINUTES = 5
EXPOSURE_WINDOW_SECONDS = 60
RIDE_PENDING_TIMEOUT_MINUTES = 15
DISPATCH_SWEEP_INTERVAL_SECONDS = 5.0
RIDE_SECURITY_CODE_ENABLED = True
PLATFORM_COMMISSION_PERCENT = 15

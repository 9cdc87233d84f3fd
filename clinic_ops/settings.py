import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-dev-key-change-in-production')
DEBUG = os.getenv('DJANGO_DEBUG', '1') == '1'
ALLOWED_HOSTS = ['*']

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'clinic',
]

MIDDLEWARE = [
    'clinic.middleware_metrics.MetricsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'clinic_ops.middleware.TenantMiddleware',
    'clinic_ops.middleware.AppExceptionMiddleware',
]

ROOT_URLCONF = 'clinic_ops.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'clinic_ops.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('POSTGRES_DB', 'clinic_db'),
        'USER': os.getenv('POSTGRES_USER', 'clinic_user'),
        'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'clinic_pass'),
        'HOST': os.getenv('POSTGRES_HOST', 'db'),
        'PORT': os.getenv('POSTGRES_PORT', '5432'),
    }
}

AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'ja'
TIME_ZONE = 'Asia/Tokyo'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# 多租户：请求头没有 X-Tenant-Id 时使用的租户
DEFAULT_TENANT_ID = os.getenv('DEFAULT_TENANT_ID', 'default')

# 管理 API 的访问令牌（X-Admin-Token 请求头）
ADMIN_API_TOKEN = os.getenv('ADMIN_API_TOKEN', '')

# LINE：患者用 channel + 管理员群通知用 channel
LINE_API_BASE = os.getenv('LINE_API_BASE', 'https://api.line.me')
LINE_CHANNEL_ACCESS_TOKEN = os.getenv('LINE_CHANNEL_ACCESS_TOKEN', '')
LINE_NOTIFY_CHANNEL_ACCESS_TOKEN = os.getenv('LINE_NOTIFY_CHANNEL_ACCESS_TOKEN', '')
LINE_ADMIN_GROUP_ID = os.getenv('LINE_ADMIN_GROUP_ID', '')
LINE_TIMEOUT_SECONDS = float(os.getenv('LINE_TIMEOUT_SECONDS', '10'))

# LINE 模式：USE_MOCK_LINE=1 用 mock（不调 LINE API），=0 真实推送
USE_MOCK_LINE = os.getenv('USE_MOCK_LINE', '1') == '1'

# 支付网关 webhook 签名
SQUARE_WEBHOOK_SIGNATURE_KEY = os.getenv('SQUARE_WEBHOOK_SIGNATURE_KEY', '')
SQUARE_WEBHOOK_NOTIFICATION_URL = os.getenv('SQUARE_WEBHOOK_NOTIFICATION_URL', '')
GMO_SHOP_PASS = os.getenv('GMO_SHOP_PASS', '')
PAYMENT_IDEMPOTENCY_TTL_SECONDS = int(os.getenv('PAYMENT_IDEMPOTENCY_TTL_SECONDS', str(24 * 3600)))

# 首次申请需要医生额外确认的剂量档（mg）
FIRST_DOSE_WARNING_MG = float(os.getenv('FIRST_DOSE_WARNING_MG', '7.5'))

# Redis（Celery broker + result backend + 仪表盘缓存）
REDIS_HOST = os.getenv('REDIS_HOST', 'redis')
REDIS_PORT = int(os.getenv('REDIS_PORT', '6379'))
REDIS_URL = f'redis://{REDIS_HOST}:{REDIS_PORT}/0'

# Celery
CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = REDIS_URL

# Celery worker 的 Prometheus 端口
WORKER_METRICS_PORT = int(os.getenv('WORKER_METRICS_PORT', '9090'))

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s [%(name)s] %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'clinic': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'clinic_ops': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
    },
}

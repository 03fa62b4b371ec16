import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()

# Database Configuration
MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
MONGODB_DATABASE = os.getenv('MONGODB_DATABASE', 'jarvis_usage')

# App Configuration
ENV = os.getenv('ENV', 'development')
DEBUG = os.getenv('DEBUG', 'true').lower() == 'true'
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
PORT = int(os.getenv('PORT', '8000'))

# Usage Tracking Configuration
USAGE_DEBUG_MODE = os.getenv('USAGE_DEBUG_MODE', 'false').lower() == 'true'  # logs raw message content
METRICS_REFRESH_INTERVAL_MS = int(os.getenv('METRICS_REFRESH_INTERVAL_MS', '1000'))

# Cost Estimation
# £20/month for 100,000 tokens = £0.0002 per token
CHARS_PER_TOKEN = int(os.getenv('CHARS_PER_TOKEN', '4'))
COST_PER_TOKEN = Decimal(os.getenv('COST_PER_TOKEN', '0.0002'))
CURRENCY = os.getenv('CURRENCY', 'GBP')

# Plan Limits
DEFAULT_PLAN = os.getenv('DEFAULT_PLAN', 'free')
USAGE_WARNING_RATIO = float(os.getenv('USAGE_WARNING_RATIO', '0.8'))  # warn at 80% of the monthly quota

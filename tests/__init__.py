import os

# Must run before app.config is imported anywhere in the suite.
os.environ.setdefault('DATABASE_URL', 'sqlite+pysqlite:///:memory:')
os.environ.setdefault('API_SECRET_KEY', 'test-secret')
os.environ.setdefault('PUSH_PROVIDER', 'mock')
os.environ.setdefault('EMAIL_PROVIDER', 'mock')

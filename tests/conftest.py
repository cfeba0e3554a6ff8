import os

# Settings are read at import time, so required values must exist before any
# pdf_rag_server module is imported.
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("JWT_SECRET", "test-secret-for-jwt-must-be-long-enough-32chars")
os.environ.setdefault("S3_BUCKET_NAME", "test-bucket")

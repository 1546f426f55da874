import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///assistant.db")

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4.1-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "20"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.5"))

ASSISTANT_NAME = os.getenv("ASSISTANT_NAME", "Arise")

SUMMARY_THRESHOLD = int(os.getenv("SUMMARY_THRESHOLD", "50"))
SUMMARY_KEEP_RECENT = int(os.getenv("SUMMARY_KEEP_RECENT", "20"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

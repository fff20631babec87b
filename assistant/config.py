import os

from dotenv import load_dotenv
load_dotenv()

# OpenAI model (expects OPENAI_API_KEY in env)
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.4"))

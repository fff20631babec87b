# assistant/llm.py
from __future__ import annotations

from functools import lru_cache

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI

from .config import LLM_MODEL, LLM_TEMPERATURE

follow_up_prompt = ChatPromptTemplate.from_messages(
    [
        ("system", """You are a helpful medical study coordinator assistant.
Write a short, polite and professional message to a study participant.

Rules:
- Keep it under 50 words.
- Suitable for SMS or WhatsApp; plain text only.
- Never include medical advice.
- Return ONLY the message text, no greeting labels or commentary."""),
        ("human", """Participant name: {name}
Appointment date: {date}
Appointment status: {status}
Context: {context}"""),
    ]
)

trends_prompt = ChatPromptTemplate.from_messages(
    [
        ("system", """You analyze appointment attendance for a clinical study.
Given recent appointment records, identify patterns and give 3 brief
bullet points of actionable insight to improve attendance.
Plain text bullets only."""),
        ("human", "Recent appointments (JSON):\n{appointments}"),
    ]
)


@lru_cache(maxsize=1)
def get_llm() -> ChatOpenAI:
    # built on first use so importing without OPENAI_API_KEY works
    return ChatOpenAI(model=LLM_MODEL, temperature=LLM_TEMPERATURE)


def follow_up_chain() -> Runnable:
    return follow_up_prompt | get_llm() | StrOutputParser()


def trends_chain() -> Runnable:
    return trends_prompt | get_llm() | StrOutputParser()

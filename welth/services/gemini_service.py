from google import genai
from google.genai import types
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional
import asyncio
import json
import random
import re

import structlog
from dateutil import parser as date_parser

from welth.core.config import settings
from welth.core.exceptions import ExternalServiceError, ValidationError

logger = structlog.get_logger(__name__)

RECEIPT_CATEGORIES = [
    "housing", "transportation", "groceries", "utilities", "entertainment",
    "food", "shopping", "healthcare", "education", "personal", "travel",
    "insurance", "gifts", "bills", "other-expense",
]

RECEIPT_PROMPT = f"""
Analyze this receipt image and extract the following information in JSON format:
- Total amount (just the number)
- Date (in ISO format)
- Description or items purchased (brief summary)
- Merchant/store name
- Suggested category (one of: {",".join(RECEIPT_CATEGORIES)})

Only respond with valid JSON in this exact format:
{{
  "amount": number,
  "date": "ISO date string",
  "description": "string",
  "merchantName": "string",
  "category": "string"
}}

If it's not a receipt, return an empty object
"""

INSIGHTS_PROMPT = """
Analyze this financial data and provide 3 concise, actionable insights.
Focus on spending patterns and practical advice.
Keep it friendly and conversational.

Financial Data for {month}:
- Total Income: {total_income}
- Total Expenses: {total_expenses}
- Net Income: {net_income}
- Expense Categories: {categories}

Format the response as a JSON array of strings, like this:
["insight 1", "insight 2", "insight 3"]
"""

FALLBACK_INSIGHTS = [
    "Your highest expense category this month might need attention.",
    "Consider setting up a budget for better financial management.",
    "Track your recurring expenses to identify potential savings.",
]

_FENCE = re.compile(r"```(?:json)?\n?")


@dataclass
class ReceiptScan:
    amount: Decimal
    date: datetime
    description: Optional[str] = None
    category: Optional[str] = None
    merchant_name: Optional[str] = None


async def retry_async(fn, retries=2, delay=1.5):
    try:
        return await fn()
    except Exception as error:
        error_str = str(error)
        is_quota_error = '429' in error_str or 'RESOURCE_EXHAUSTED' in error_str or 'quota' in error_str.lower()

        if retries > 0 and is_quota_error:
            wait_time = delay + (random.random() * 0.5)
            logger.warning("gemini_quota_retry", wait_seconds=round(wait_time, 2), retries_left=retries)
            await asyncio.sleep(wait_time)
            return await retry_async(fn, retries - 1, delay * 2)
        raise error


def clean_model_text(text: Optional[str]) -> str:
    """Strip markdown code fences the model likes to wrap JSON in."""
    return _FENCE.sub("", text or "").strip()


def parse_receipt(text: Optional[str]) -> Optional[ReceiptScan]:
    """Decode the model's receipt JSON; None when it is not a usable receipt."""
    try:
        data = json.loads(clean_model_text(text))
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(data, dict) or not data.get("amount") or not data.get("date"):
        return None

    try:
        amount = Decimal(str(data["amount"])).quantize(Decimal("0.01"))
        date = date_parser.parse(str(data["date"]))
    except (InvalidOperation, ValueError, OverflowError):
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    if date.tzinfo is not None:
        date = date.astimezone(timezone.utc).replace(tzinfo=None)

    category = data.get("category")
    return ReceiptScan(
        amount=amount,
        date=date,
        description=data.get("description"),
        category=category.lower() if isinstance(category, str) else None,
        merchant_name=data.get("merchantName"),
    )


def parse_insights(text: Optional[str]) -> List[str]:
    """Decode a JSON array of insight strings, falling back to generic ones."""
    try:
        data = json.loads(clean_model_text(text))
    except (json.JSONDecodeError, TypeError):
        return list(FALLBACK_INSIGHTS)
    if not isinstance(data, list):
        return list(FALLBACK_INSIGHTS)
    insights = [item.strip() for item in data if isinstance(item, str) and item.strip()]
    return insights or list(FALLBACK_INSIGHTS)


def _client() -> genai.Client:
    if not settings.GEMINI_API_KEY:
        raise ExternalServiceError("GEMINI_API_KEY not configured")
    return genai.Client(api_key=settings.GEMINI_API_KEY)


async def scan_receipt(image: bytes, mime_type: str) -> ReceiptScan:
    """Extract amount, date, description, merchant and category from a receipt image."""
    client = _client()

    async def call_api():
        response = await client.aio.models.generate_content(
            model=settings.GEMINI_MODEL,
            contents=[
                types.Part.from_bytes(data=image, mime_type=mime_type),
                RECEIPT_PROMPT,
            ],
        )
        return response.text

    try:
        text = await retry_async(call_api)
    except Exception as error:
        logger.error("receipt_scan_failed", error=str(error))
        raise ExternalServiceError(f"Failed to scan receipt: {error}")

    scan = parse_receipt(text)
    if scan is None:
        logger.info("receipt_scan_unusable")
        raise ValidationError("Could not read a receipt from this image")
    return scan


async def generate_financial_insights(stats: Dict[str, Any], month: str) -> List[str]:
    """Three short insights for a monthly report; never raises."""
    categories = ", ".join(
        f"{category}: {amount}" for category, amount in (stats.get("by_category") or {}).items()
    ) or "none"
    prompt = INSIGHTS_PROMPT.format(
        month=month,
        total_income=stats.get("total_income", 0),
        total_expenses=stats.get("total_expenses", 0),
        net_income=Decimal(stats.get("total_income", 0)) - Decimal(stats.get("total_expenses", 0)),
        categories=categories,
    )

    try:
        client = _client()

        async def call_api():
            response = await client.aio.models.generate_content(
                model=settings.GEMINI_MODEL,
                contents=[types.Content(role="user", parts=[types.Part.from_text(text=prompt)])],
                config=types.GenerateContentConfig(
                    response_mime_type="application/json",
                    temperature=0.7,
                ),
            )
            return response.text

        text = await retry_async(call_api)
    except Exception as error:
        logger.warning("insights_generation_failed", error=str(error))
        return list(FALLBACK_INSIGHTS)

    return parse_insights(text)

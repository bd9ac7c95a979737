from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from freelance_ledger.core.config import settings
from freelance_ledger.core.logging import get_logger, log_event

logger = get_logger(__name__)

ANTHROPIC_VERSION = "bedrock-2023-05-31"
PRIMARY_MAX_TOKENS = 1024
FALLBACK_MAX_TOKENS = 512

RECEIPT_CATEGORIES: tuple[str, ...] = (
    "Advertising",
    "Office Supplies",
    "Meals",
    "Travel",
    "Equipment",
    "Software",
    "Professional Services",
    "Internet",
    "Phone",
    "Utilities",
    "Insurance",
    "Rent",
    "Other",
)

PRIMARY_PROMPT = (
    "You are an expert receipt parser for freelance expense tracking and tax filing "
    "(US Schedule C).\n\n"
    "Analyze the provided receipt image and extract the following information in JSON format:\n\n"
    "{\n"
    '  "merchantName": "The business/vendor name",\n'
    '  "date": "Receipt date in YYYY-MM-DD format",\n'
    '  "total": "Total amount as a number (e.g., 99.99)",\n'
    '  "tax": "Tax amount as a number, null if not present",\n'
    '  "currency": "Currency code (USD, EUR, etc.) or null",\n'
    '  "category": "Expense category - one of: [' + ", ".join(RECEIPT_CATEGORIES) + ']",\n'
    '  "isTaxable": "Boolean - is this expense tax deductible under US IRS Schedule C rules?",\n'
    '  "lineItems": [\n'
    "    {\n"
    '      "description": "Item description",\n'
    '      "quantity": "Quantity if present, null otherwise",\n'
    '      "unitPrice": "Unit price if present, null otherwise",\n'
    '      "amount": "Line item total as number"\n'
    "    }\n"
    "  ]\n"
    "}\n\n"
    "Important rules:\n"
    "1. Be strict about accuracy - only extract values you can clearly see\n"
    '2. For "isTaxable", use IRS Schedule C deductibility rules for freelancers/self-employed\n'
    "3. If you cannot determine a field, omit it rather than guessing\n"
    "4. For currency, infer from symbols ($ = USD, € = EUR, £ = GBP, etc.)\n"
    "5. Preserve line item details when present; omit if not visible\n"
    "6. Return ONLY valid JSON, no additional text\n\n"
    "Respond with only the JSON object."
)

FALLBACK_PROMPT = (
    "Extract receipt information as JSON: {merchantName, date (YYYY-MM-DD), total (number), "
    "tax (number or null), currency, category, isTaxable (boolean), lineItems (array of "
    "{description, quantity, unitPrice, amount})}. Return only valid JSON."
)


class ReceiptParseError(RuntimeError):
    pass


@dataclass
class ParsedReceipt:
    merchant_name: str | None = None
    date: str | None = None
    total: Decimal | None = None
    tax: Decimal | None = None
    currency: str | None = None
    category: str | None = None
    is_taxable: bool | None = None
    line_items: list[dict[str, Any]] = field(default_factory=list)
    raw_response: dict[str, Any] | None = None
    model_id: str | None = None

    def to_normalized(self) -> dict[str, Any]:
        return {
            "merchantName": self.merchant_name,
            "date": self.date,
            "total": str(self.total) if self.total is not None else None,
            "tax": str(self.tax) if self.tax is not None else None,
            "currency": self.currency,
            "category": self.category,
            "isTaxable": self.is_taxable,
            "lineItems": self.line_items,
        }


_client = None


def get_bedrock_client():
    global _client  # noqa: PLW0603
    if _client is None:
        config = Config(
            retries={"max_attempts": 2, "mode": "standard"},
            connect_timeout=10,
            read_timeout=settings.bedrock_timeout_seconds,
        )
        _client = boto3.client("bedrock-runtime", region_name=settings.aws_region, config=config)
    return _client


def parse_with_primary_model(body: bytes, content_type: str) -> ParsedReceipt:
    return _invoke_receipt_model(
        model_id=settings.bedrock_primary_model_id,
        prompt=PRIMARY_PROMPT,
        max_tokens=PRIMARY_MAX_TOKENS,
        body=body,
        content_type=content_type,
    )


def parse_with_fallback_model(body: bytes, content_type: str) -> ParsedReceipt:
    return _invoke_receipt_model(
        model_id=settings.bedrock_fallback_model_id,
        prompt=FALLBACK_PROMPT,
        max_tokens=FALLBACK_MAX_TOKENS,
        body=body,
        content_type=content_type,
    )


def build_request_body(*, prompt: str, max_tokens: int, body: bytes, content_type: str) -> dict:
    media_type = "image/jpeg" if content_type == "image/jpg" else content_type
    return {
        "anthropic_version": ANTHROPIC_VERSION,
        "max_tokens": max_tokens,
        "messages": [
            {
                "role": "user",
                "content": [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": media_type,
                            "data": base64.b64encode(body).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": prompt},
                ],
            }
        ],
    }


def _invoke_receipt_model(
    *, model_id: str, prompt: str, max_tokens: int, body: bytes, content_type: str
) -> ParsedReceipt:
    request = build_request_body(
        prompt=prompt, max_tokens=max_tokens, body=body, content_type=content_type
    )
    try:
        resp = get_bedrock_client().invoke_model(
            modelId=model_id,
            contentType="application/json",
            accept="application/json",
            body=json.dumps(request),
        )
        raw = json.loads(resp["body"].read())
    except (ClientError, BotoCoreError) as e:
        raise ReceiptParseError(f"Model invocation failed ({model_id}): {e}") from e
    except (ValueError, KeyError) as e:
        raise ReceiptParseError(f"Model returned an unreadable response ({model_id})") from e

    log_event(
        logger,
        "receipt.ai.response",
        model_id=model_id,
        stop_reason=raw.get("stop_reason") if isinstance(raw, dict) else None,
    )
    return parse_model_response(raw, model_id=model_id)


def parse_model_response(raw: Any, *, model_id: str | None = None) -> ParsedReceipt:
    content = raw.get("content") if isinstance(raw, dict) else None
    text = None
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                text = block.get("text")
                break
    if not isinstance(text, str) or not text.strip():
        raise ReceiptParseError("No text response from AI model")

    obj = _parse_json_object(text)
    if not isinstance(obj, dict):
        raise ReceiptParseError("AI parsing returned invalid JSON format")

    parsed = sanitize_receipt_fields(obj)
    parsed.raw_response = raw
    parsed.model_id = model_id
    return parsed


def sanitize_receipt_fields(obj: dict[str, Any]) -> ParsedReceipt:
    merchant = obj.get("merchantName")
    merchant = merchant.strip()[:255] or None if isinstance(merchant, str) else None

    receipt_date = None
    raw_date = obj.get("date")
    if isinstance(raw_date, str):
        try:
            receipt_date = date.fromisoformat(raw_date.strip()[:10]).isoformat()
        except ValueError:
            receipt_date = None

    category = obj.get("category")
    category = category.strip() or None if isinstance(category, str) else None

    is_taxable = obj.get("isTaxable")
    if isinstance(is_taxable, str):
        is_taxable = {"true": True, "false": False}.get(is_taxable.strip().lower())
    elif not isinstance(is_taxable, bool):
        is_taxable = None

    return ParsedReceipt(
        merchant_name=merchant,
        date=receipt_date,
        total=_money(obj.get("total")),
        tax=_money(obj.get("tax")),
        currency=_currency(obj.get("currency")),
        category=category,
        is_taxable=is_taxable,
        line_items=_line_items(obj.get("lineItems")),
    )


def _money(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    if not isinstance(value, (int, float, str)):
        return None
    s = str(value).strip().replace(",", "").lstrip("$€£")
    if not s:
        return None
    try:
        amount = Decimal(s)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount.quantize(Decimal("0.01"))


def _currency(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    cur = value.strip().upper()
    if len(cur) == 3 and cur.isalpha():
        return cur
    return None


def _line_items(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    items: list[dict[str, Any]] = []
    for raw in value[:100]:
        if not isinstance(raw, dict):
            continue
        description = raw.get("description")
        amount = _money(raw.get("amount"))
        if not isinstance(description, str) or not description.strip():
            continue
        unit_price = _money(raw.get("unitPrice"))
        quantity = raw.get("quantity")
        items.append(
            {
                "description": description.strip()[:500],
                "quantity": quantity if isinstance(quantity, (int, float)) else None,
                "unitPrice": str(unit_price) if unit_price is not None else None,
                "amount": str(amount) if amount is not None else None,
            }
        )
    return items


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Fenced or chatty responses: take the outermost {...} block.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None

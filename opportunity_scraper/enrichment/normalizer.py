"""
Record Normalization Module
Cleans extracted field values before they become an ExtractedRecord
"""
import re
from typing import Dict, Optional, List, Any

from dateutil import parser as date_parser

DATE_FIELDS = ("publish_date", "closing_date", "deadline_for_questions", "estimated_start_date")

# Parenthesised timezone hints, e.g. "(ACT Local Time)", "(Canberra time)"
_PAREN_RE = re.compile(r"\([^)]*\)")
_TIME_RE = re.compile(r"\d{1,2}[:.]\d{2}|\d\s*(am|pm)\b", re.IGNORECASE)

EMAIL_BLOCKLIST_PREFIXES = ("noreply", "no-reply", "donotreply", "do-not-reply")
EMAIL_BLOCKLIST_FRAGMENTS = ("example.", "test.")


class RecordNormalizer:
    """Normalize extracted opportunity fields"""

    @staticmethod
    def normalize_text(value: Any) -> Optional[str]:
        """Collapse whitespace; empty strings become None"""
        if value is None:
            return None
        text = re.sub(r"[ \t\r\f\v]+", " ", str(value))
        text = re.sub(r"\n{3,}", "\n\n", text).strip()
        return text or None

    @staticmethod
    def normalize_date(value: Optional[str]) -> Optional[str]:
        """
        Parse a human date into ISO format

        Australian sites write day-first dates ("13/01/2025", "Monday, 13 January 2025 5:00pm").
        Unparseable values are returned unchanged rather than dropped.
        """
        if not value:
            return None

        raw = str(value).strip()
        if not re.search(r"\d", raw):
            return raw

        cleaned = _PAREN_RE.sub(" ", raw).replace(" at ", " ")
        try:
            parsed = date_parser.parse(cleaned, dayfirst=True, fuzzy=True)
        except (ValueError, OverflowError):
            return raw

        if _TIME_RE.search(cleaned):
            return parsed.isoformat()
        return parsed.date().isoformat()

    @staticmethod
    def normalize_opportunity_type(rfq_type: Optional[str]) -> Optional[str]:
        """Labour hire RFQs are roles; everything else is a service"""
        if not rfq_type:
            return None

        val = rfq_type.lower()
        if "labour hire" in val or "dmp2" in val:
            return "role"
        return "service"

    @staticmethod
    def normalize_status(value: Optional[str]) -> Optional[str]:
        """Map free-text status to Open / Closing Soon / Closed"""
        if not value:
            return None

        val = value.lower()
        if "closing" in val:
            return "Closing Soon"
        elif "closed" in val:
            return "Closed"
        elif "open" in val or "live" in val:
            return "Open"

        # If no match, return original
        return value

    @staticmethod
    def clean_emails(emails: List[str]) -> List[str]:
        """Lower-case, de-duplicate and drop no-reply / example addresses"""
        cleaned = []
        for email in emails:
            email = email.strip().strip(".").lower()
            if not email or email.startswith(EMAIL_BLOCKLIST_PREFIXES):
                continue
            if any(fragment in email for fragment in EMAIL_BLOCKLIST_FRAGMENTS):
                continue
            if email not in cleaned:
                cleaned.append(email)
        return cleaned

    @classmethod
    def normalize_fields(cls, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Normalize a dict of extracted fields in place

        Args:
            fields: field name -> raw value

        Returns:
            The same dict, cleaned
        """
        for key, value in list(fields.items()):
            if isinstance(value, str):
                fields[key] = cls.normalize_text(value)

        for key in DATE_FIELDS:
            if fields.get(key):
                fields[key] = cls.normalize_date(fields[key])

        if fields.get("status_label"):
            fields["status_label"] = cls.normalize_status(fields["status_label"])

        if fields.get("rfq_type") and not fields.get("opportunity_type"):
            fields["opportunity_type"] = cls.normalize_opportunity_type(fields["rfq_type"])

        return fields

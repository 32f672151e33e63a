import re
from typing import Any, Dict, List, Pattern
from urllib.parse import parse_qsl, urlencode


class DataSanitizer:
    """Mask sensitive information before it reaches log sinks.

    Field names that look like credentials have their values replaced,
    email addresses are partially masked, and query strings are rewritten
    so tokens passed as parameters never end up in log files.
    """

    MASK = "***MASKED***"

    def __init__(self):
        self.sensitive_patterns: List[Pattern[str]] = [
            re.compile(pattern, re.IGNORECASE)
            for pattern in (
                r"password",
                r"passwd",
                r"secret",
                r"token",
                r"api_?key",
                r"authorization",
                r"credential",
                r"session",
                r"csrf",
            )
        ]
        self.email_pattern = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
        self.query_string_pattern = re.compile(
            r"(?<=\?)([a-zA-Z_][\w-]*=[^&\s]*(?:&[a-zA-Z_][\w-]*=[^&\s]*)*)"
        )
        self.sql_parameters_pattern = re.compile(r"\[parameters: .*?\]", re.DOTALL)

    def sanitize_for_logging(self, data: Any) -> Any:
        """Sanitize data for logging purposes.

        Parameters
        ----------
        data: Any
            Data to be sanitized (string, dict, list, scalar).

        Returns
        -------
        Any
            Sanitized data with sensitive information masked.
        """
        return self._sanitize_value(data)

    def sanitize_exception_for_logging(self, exception: Any) -> str:
        """Render an exception (or message) as a sanitized string.

        Bound SQL parameters embedded in SQLAlchemy messages are dropped.

        Parameters
        ----------
        exception: Any
            Exception instance or message to sanitize.

        Returns
        -------
        str
            Sanitized message.
        """
        try:
            text = str(exception)
            text = self.sql_parameters_pattern.sub("[parameters: ***SANITIZED***]", text)
            return self._sanitize_string(text)
        except Exception:
            return f"***SANITIZED*** {type(exception).__name__}"

    def _is_sensitive_field(self, field_name: str) -> bool:
        return any(pattern.search(field_name) for pattern in self.sensitive_patterns)

    def _mask_email(self, email: str) -> str:
        local, domain = email.split("@", 1)
        if len(local) <= 2:
            return f"{'*' * len(local)}@{domain}"
        return f"{local[0]}{'*' * (len(local) - 2)}{local[-1]}@{domain}"

    def _sanitize_query_string(self, query_string: str) -> str:
        pairs = parse_qsl(query_string, keep_blank_values=True)
        return urlencode(
            [
                (key, self.MASK if self._is_sensitive_field(key) else value)
                for key, value in pairs
            ],
            safe="*",
        )

    def _sanitize_string(self, text: str, max_length: int = 1000) -> str:
        if len(text) > max_length:
            text = text[:max_length] + "..."

        text = self.email_pattern.sub(lambda m: self._mask_email(m.group()), text)
        return self.query_string_pattern.sub(
            lambda m: self._sanitize_query_string(m.group(1)), text
        )

    def _sanitize_dict(self, data: Dict[str, Any], max_depth: int = 5) -> Dict[str, Any]:
        if max_depth <= 0:
            return {"<max_depth_reached>": "..."}

        return {
            key: (
                self.MASK
                if self._is_sensitive_field(str(key))
                else self._sanitize_value(value, max_depth - 1)
            )
            for key, value in data.items()
        }

    def _sanitize_value(self, value: Any, max_depth: int = 5) -> Any:
        if value is None or isinstance(value, (bool, int, float)):
            return value

        if isinstance(value, dict):
            return self._sanitize_dict(value, max_depth)

        if isinstance(value, (list, tuple, set)):
            if max_depth <= 0:
                return ["<max_depth_reached>"]
            return [self._sanitize_value(item, max_depth - 1) for item in list(value)[:10]]

        return self._sanitize_string(str(value))

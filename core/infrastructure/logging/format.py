from typing import Any, Dict

LEVEL_COLORS = {
    "CRITICAL": "red",
    "DEBUG": "white",
    "ERROR": "magenta",
    "INFO": "blue",
    "SUCCESS": "green",
    "TRACE": "dim",
    "WARNING": "yellow",
}


class CustomLogFormat:
    """Build loguru format strings for the console and file sinks.

    Parameters
    ----------
    record: Dict[str, Any]
        Loguru record dictionary.
    """

    def __init__(self, record: Dict[str, Any]) -> None:
        self.record = record
        self.time_str = record["time"].strftime("%Y-%m-%d %H:%M:%S.%f")[:-4]
        self.level = record["level"].name
        self.color = LEVEL_COLORS.get(self.level, "white")

        function = record["function"]
        if function == "<module>":
            function = "\\<module\\>"
        self.location = f"{record['file']}:{function}:{record['line']}"

    def _base_format(self) -> str:
        return (
            f"<dim><bold>{self.time_str}</bold></dim> | "
            f"<{self.color}>{self.level:8}</{self.color}> | "
            f"<cyan>{self.location}</cyan> - "
            f"<{self.color}>{{message}}</{self.color}>"
        )

    def log_console_format(self) -> str:
        """Format the record for console output: time, level, location, message.

        Returns
        -------
        str
            Loguru format string.
        """
        request_id = self.record["extra"].get("request_id")
        prefix = f"<magenta>[{request_id}]</magenta> " if request_id else ""
        return prefix + self._base_format() + "\n{exception}"

    def log_file_format(self) -> str:
        """Format the record for file output, appending bound context fields.

        Returns
        -------
        str
            Loguru format string.
        """
        context_parts = [
            f"{key}={value}"
            for key, value in self.record["extra"].items()
            if key not in ("target",)
        ]
        context_string = f" | {', '.join(context_parts)}" if context_parts else ""
        context_string = context_string.replace("{", "{{").replace("}", "}}")
        context_string = context_string.replace("<", r"\<")

        return (
            self._base_format()
            + f"<bold><dim>{context_string}</dim></bold>"
            + "\n{exception}"
        )

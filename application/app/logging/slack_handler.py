import os
import logging
import requests
from datetime import datetime, timezone


class SlackErrorHandler(logging.Handler):
    """Sends ERROR and CRITICAL logs to Slack"""
    def __init__(self):
        super().__init__(level=logging.ERROR)
        self.webhook = os.getenv('SLACK_WEBHOOK_URL')
        self.enabled = bool(self.webhook)

    def build_text(self, record) -> str:
        env = os.getenv('APPLICATION_ENVIRONMENT', 'LOCAL').upper()
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

        lines = []
        lines.append(f":mag: {env}-MONITOR lead-verify-gateway error")
        lines.append("")
        lines.append(f"- :clock1: Timestamp: {ts}")
        lines.append(f"- :triangular_flag_on_post: Level: **{record.levelname}**")
        lines.append(f"- :warning: Logger: {record.name}")
        lines.append(f"- :file_folder: Module: {getattr(record, 'module', '')}")
        lines.append(f"- :pushpin: Function: {getattr(record, 'funcName', '')}")
        lines.append(f"- :straight_ruler: Line Number: {getattr(record, 'lineno', '')}")
        lines.append("")
        lines.append("```" + str(record.getMessage()) + "```")
        return "\n".join(lines)

    def emit(self, record):
        if not self.enabled:
            return
        try:
            requests.post(self.webhook, json={"text": self.build_text(record)}, timeout=2)
        except Exception:
            self.handleError(record)


slack_handler = SlackErrorHandler()

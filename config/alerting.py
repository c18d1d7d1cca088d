"""
Lightweight alerting module.

Routes pipeline alerts (discarded jobs, failed imports, stuck queues)
through logging plus an optional Slack webhook.
"""
import logging
import os

import requests

logger = logging.getLogger("alerting")


def send_alert(severity: str, title: str, detail: str = "") -> None:
    """
    Send alert through configured channels.

    Args:
        severity: "critical", "warning", or "info"
        title: Short alert title
        detail: Additional context
    """
    log_fn = {
        "critical": logger.critical,
        "warning": logger.warning,
    }.get(severity, logger.info)
    log_fn(f"ALERT [{severity.upper()}]: {title} -- {detail}")

    webhook = os.environ.get("SLACK_WEBHOOK_URL")
    if not webhook:
        return

    emoji = {
        "critical": ":red_circle:",
        "warning": ":warning:",
    }.get(severity, ":information_source:")
    try:
        requests.post(
            webhook,
            json={"text": f"{emoji} *{title}*\n{detail}"},
            timeout=5,
        )
    except requests.RequestException:
        logger.exception("Failed to send Slack alert")

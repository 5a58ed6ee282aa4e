# notify.py
from __future__ import annotations

import logging
from typing import Any, Dict, Sequence

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError
from models import Alert

logger = logging.getLogger(__name__)

ALERT_TITLE = "Plant Alert"


def notify_console(title: str, body: str) -> None:
    logger.warning("%s\n%s", title, body)


def notify_slack(webhook_url: str, title: str, body: str, timeout: int = 10) -> None:
    if not webhook_url:
        logger.warning("Slack notification skipped: no webhook_url configured")
        return
    r = requests.post(webhook_url, json={"text": f"*{title}*\n{body}"}, timeout=timeout)
    r.raise_for_status()


def notify_email_ses(
    region: str,
    access_key: str,
    secret_key: str,
    from_address: str,
    to_addrs: Sequence[str],
    subject: str,
    body_text: str,
    charset: str = "UTF-8",
) -> None:
    to_addrs = [a for a in to_addrs if a]
    if not to_addrs:
        logger.warning("Email notification skipped: no recipients")
        return

    client = boto3.client(
        "ses",
        region_name=region,
        aws_access_key_id=access_key,
        aws_secret_access_key=secret_key,
    )
    client.send_email(
        Destination={"ToAddresses": list(to_addrs)},
        Message={
            "Body": {"Text": {"Charset": charset, "Data": body_text}},
            "Subject": {"Charset": charset, "Data": subject},
        },
        Source=from_address,
    )


def format_alert(alert: Alert) -> str:
    return (
        f"{alert.message}\n"
        f"sensor={alert.sensor_type}  value={alert.value:g}{alert.unit}"
        + (f"  plant={alert.plant_id}" if alert.plant_id is not None else "")
    )


def dispatch_alert(cfg: Dict[str, Any], alert: Alert) -> None:
    """Send a new alert to every enabled channel; channel errors are only logged."""
    notify_cfg = cfg.get("notify", {}) or {}
    if not notify_cfg.get("enabled", False):
        return

    channels = notify_cfg.get("channels", [])
    msg = format_alert(alert)

    if "console" in channels:
        notify_console(ALERT_TITLE, msg)

    slack_cfg = notify_cfg.get("slack", {}) or {}
    if "slack" in channels and slack_cfg.get("enabled", False):
        try:
            notify_slack(slack_cfg.get("webhook_url", ""), ALERT_TITLE, msg)
        except requests.RequestException as exc:
            logger.error("Slack notification failed for alert %s: %s", alert.id, exc)

    email_cfg = notify_cfg.get("email", {}) or {}
    if (
        "email" in channels
        and email_cfg.get("enabled", False)
        and email_cfg.get("provider") == "ses"
    ):
        ses_cfg = email_cfg.get("ses", {}) or {}
        try:
            notify_email_ses(
                region=ses_cfg["region"],
                access_key=ses_cfg["access_key"],
                secret_key=ses_cfg["secret_key"],
                from_address=ses_cfg["from_address"],
                to_addrs=email_cfg.get("to_addrs", []),
                subject=f"{ALERT_TITLE}: {alert.sensor_type}",
                body_text=msg,
            )
        except (BotoCoreError, ClientError, KeyError) as exc:
            logger.error("Email notification failed for alert %s: %s", alert.id, exc)

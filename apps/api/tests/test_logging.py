from __future__ import annotations

import json
import logging

from loguru import logger

from credit_ledger_api.core.logging import configure_logging


def _json_lines(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


def test_logs_are_json_with_service_metadata(capsys) -> None:
    configure_logging(service_name="credit-ledger-api", environment="staging", version="1.2.3", level="info")

    logger.info("Ledger entry appended", delta=4, source="stripe")
    logger.debug("Not emitted at INFO")
    logging.getLogger("credit_ledger.tests").warning("Bridged %s", "record")
    logging.getLogger("httpx").info("Quietened chatter")

    lines = _json_lines(capsys.readouterr().out)

    messages = [line["message"] for line in lines]
    assert messages == ["Ledger entry appended", "Bridged record"]
    appended, bridged = lines
    assert appended["service"] == "credit-ledger-api"
    assert appended["environment"] == "staging"
    assert appended["version"] == "1.2.3"
    assert appended["delta"] == 4
    assert appended["level"] == "info"
    assert bridged["stdlib_logger"] == "credit_ledger.tests"
    assert bridged["level"] == "warning"

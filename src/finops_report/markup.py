import logging
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)

MARGIN_ENV_VAR = "AWS_MARGIN"
NO_MARKUP = Decimal("1")


def markup_factor(raw: str | None) -> Decimal:
    """
    Convert a margin percentage (e.g. "15", "-10.5") into a multiplier.

    Missing, malformed and below -100% values all fall back to no markup.
    """
    if raw is None or not raw.strip():
        logger.info("%s environment variable not set. Applying 0%% margin.", MARGIN_ENV_VAR)
        return NO_MARKUP

    try:
        percent = Decimal(raw.strip())
    except InvalidOperation:
        logger.warning("Could not parse %s value '%s'. Applying 0%% margin.", MARGIN_ENV_VAR, raw)
        return NO_MARKUP

    if not percent.is_finite():
        logger.warning("Could not parse %s value '%s'. Applying 0%% margin.", MARGIN_ENV_VAR, raw)
        return NO_MARKUP

    if percent < -100:
        # a factor below zero would flip the sign of every amount
        logger.warning("%s of %s%% is below -100%%. Applying 0%% margin.", MARGIN_ENV_VAR, percent)
        return NO_MARKUP

    if percent < 0:
        logger.info("Applying negative %s (discount) of %.2f%%", MARGIN_ENV_VAR, percent)
    else:
        logger.debug("Applying %s of %.2f%%", MARGIN_ENV_VAR, percent)

    return NO_MARKUP + percent / 100


def apply_markup(amount: Decimal, factor: Decimal) -> Decimal:
    return amount * factor

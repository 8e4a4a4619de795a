import logging
from decimal import Decimal
from sqlalchemy.orm import Session
from circulation.config import settings
from circulation.database import transaction
from circulation.models.loan import LoanConfiguration

logger = logging.getLogger(__name__)

def get_configuration(db: Session) -> LoanConfiguration:
    """Return the circulation policy row, creating it from settings on first use."""
    config = db.query(LoanConfiguration).order_by(LoanConfiguration.config_id).first()
    if config is None:
        config = LoanConfiguration(
            default_loan_days=settings.default_loan_days,
            max_active_loans=settings.max_active_loans,
            max_renewals=settings.max_renewals,
            grace_period_days=settings.grace_period_days,
            daily_fine_amount=Decimal(str(settings.daily_fine_amount)),
            allow_loans_with_fines=settings.allow_loans_with_fines,
            max_unpaid_fines=Decimal(str(settings.max_unpaid_fines)),
            max_overdue_loans=settings.max_overdue_loans,
            reservation_hold_days=settings.reservation_hold_days,
            reject_fine_overpayment=settings.reject_fine_overpayment,
        )
        db.add(config)
        db.flush()
        logger.info("Loan configuration initialised from settings")
    return config

def update_configuration(db: Session, changes: dict) -> LoanConfiguration:
    with transaction(db):
        config = get_configuration(db)
        for field, value in changes.items():
            if field in ("daily_fine_amount", "max_unpaid_fines"):
                value = Decimal(str(value))
            setattr(config, field, value)
        logger.info(f"Loan configuration updated: {sorted(changes)}")
    db.refresh(config)
    return config

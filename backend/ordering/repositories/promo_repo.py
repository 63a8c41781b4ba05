from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ordering.models.promo_code import PromoCode, PromoCodeUsage


class PromoCodeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_active_by_code(self, code: str) -> Optional[PromoCode]:
        return (
            self.db.query(PromoCode)
            .filter(PromoCode.code == code, PromoCode.is_active == True)
            .first()
        )

    def get_by_code(self, code: str) -> Optional[PromoCode]:
        return self.db.query(PromoCode).filter(PromoCode.code == code).first()

    def count_user_usages(self, promo_code_id: int, user_id: int) -> int:
        return (
            self.db.query(func.count(PromoCodeUsage.id))
            .filter(
                PromoCodeUsage.promo_code_id == promo_code_id,
                PromoCodeUsage.user_id == user_id,
            )
            .scalar()
            or 0
        )

    def record_usage(
        self, promo: PromoCode, user_id: int, order_id: int, discount_amount
    ) -> PromoCodeUsage:
        usage = PromoCodeUsage(
            promo_code_id=promo.id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount_amount,
        )
        self.db.add(usage)
        promo.usage_count = (promo.usage_count or 0) + 1
        self.db.flush()
        return usage

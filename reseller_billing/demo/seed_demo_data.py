# reseller_billing/demo/seed_demo_data.py

from typing import List

from reseller_billing.core.pricing import PriceTable
from reseller_billing.storage.models import Representative
from reseller_billing.storage.repository import BillingRepository

SAMPLE_USAGE_CSV = """admin_username,limited_1m,limited_2m,limited_3m,limited_4m,limited_5m,limited_6m,unlimited_1m,unlimited_2m,unlimited_3m,unlimited_4m,unlimited_5m,unlimited_6m
ali_vpn,10,5,0,0,0,0,2,1,0,0,0,0
sara_network,15,8,2,0,0,0,1,0,1,0,0,0
hassan_proxy,20,12,5,1,0,0,3,2,1,0,0,0
null,0,0,0,0,0,0,0,0,0,0,0,0
maryam_net,8,4,0,0,0,0,1,1,0,0,0,0
"""

STANDARD_PRICING = PriceTable(
    limited_1_month=5000,
    limited_2_month=4500,
    limited_3_month=4000,
    limited_4_month=3800,
    limited_5_month=3600,
    limited_6_month=3500,
    unlimited_monthly=25000
)

DEMO_REPRESENTATIVES = [
    ("علی رضایی", "ali_vpn", "@ali_vpn", "Ali VPN"),
    ("سارا محمدی", "sara_network", "@sara_network", "Sara Network"),
    ("حسن احمدی", "hassan_proxy", None, "Hassan Proxy"),
    ("مریم کریمی", "maryam_net", "@maryam_net", "Maryam Net"),
]


def seed_demo_data(repository: BillingRepository) -> List[Representative]:
    """Create the demo representatives, leaving existing balances untouched."""
    repository.initialize_schema()
    return [
        repository.upsert_representative(
            full_name=full_name,
            admin_username=admin_username,
            pricing=STANDARD_PRICING,
            telegram_id=telegram_id,
            store_name=store_name
        )
        for full_name, admin_username, telegram_id, store_name in DEMO_REPRESENTATIVES
    ]

from typing import Dict

from chalicelib.constants import keys_structure
from chalicelib.utils import db as utils_db, exceptions
from chalicelib.utils.logger import logger


def get_company_settings_record(company_id: str) -> Dict:
    """
    Company level settings, e.g. order_notification_emails
    :return:
    settings dict, empty if company record does not exist
    """
    try:
        company_record = utils_db.get_db_item(
            partkey=keys_structure.companies_pk,
            sortkey=keys_structure.companies_sk.format(company_id=company_id)
        )
    except exceptions.RecordNotFound:
        logger.warning(f"get_company_settings_record ::: settings for {company_id=} not found, using defaults")
        return {}
    return company_record.get('settings', {})

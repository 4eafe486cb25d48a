import hashlib
import hmac
import os
from typing import Dict
from uuid import uuid4

from chalice import Response
from chalice.app import Request

from chalicelib.constants import keys_structure
from chalicelib.constants.constants import MIN_PASSWORD_LENGTH, PASSWORD_HASH_ITERATIONS, DEFAULT_USER_ROLE
from chalicelib.constants.status_codes import http200, http201
from chalicelib.users import User
from chalicelib.utils import auth as utils_auth, app as utils_app, data as utils_data, db as utils_db
from chalicelib.utils.exceptions import MandatoryFieldsAreNotFilled, NotAuthorizedException, RecordAlreadyExists, \
    RecordNotFound, ValidationException
from chalicelib.utils.logger import logger, set_current_request_id

HASH_NAME = 'sha256'


def hash_password(password: str, salt: str = None, iterations: int = PASSWORD_HASH_ITERATIONS) -> str:
    salt = salt or os.urandom(16).hex()
    digest = hashlib.pbkdf2_hmac(HASH_NAME, password.encode(), bytes.fromhex(salt), iterations).hex()
    return f'pbkdf2_{HASH_NAME}${iterations}${salt}${digest}'


def verify_password(password: str, password_hash: str) -> bool:
    try:
        _, iterations, salt, _ = password_hash.split('$')
    except (AttributeError, ValueError):
        return False
    return hmac.compare_digest(hash_password(password, salt, int(iterations)), password_hash)


def normalize_email(email) -> str:
    return email.strip().lower() if isinstance(email, str) else ''


def get_login_record(company_id: str, email: str) -> Dict:
    return utils_db.get_db_item(
        partkey=keys_structure.user_logins_pk.format(company_id=company_id),
        sortkey=keys_structure.user_logins_sk.format(email=email)
    )


def create_login_record(company_id: str, email: str, user_id: str, password: str) -> None:
    utils_db.put_db_record({
        'partkey': keys_structure.user_logins_pk.format(company_id=company_id),
        'sortkey': keys_structure.user_logins_sk.format(email=email),
        'user_id': user_id,
        'password_hash': hash_password(password)
    })


def auth_response(user: User, status_code: int = http200) -> Response:
    token = utils_auth.generate_token(user.company_id, user.id_, user.role)
    return Response(status_code=status_code, body={'token': token, 'user': user.to_ui()})


def validate_credentials(body: Dict):
    email, password = normalize_email(body.get('email')), body.get('password')
    if not email or not isinstance(password, str) or not password:
        raise MandatoryFieldsAreNotFilled('email and password are required')
    return email, password


@utils_app.log_start_finish
def endpoint_register(request: Request) -> Response:
    set_current_request_id(request)
    company_id = utils_auth.get_company_id_by_request(request)
    body = utils_data.parse_raw_body(request)
    email, password = validate_credentials(body)
    if '@' not in email:
        raise ValidationException(f'Email {email} is not valid')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationException(f'Password must contain at least {MIN_PASSWORD_LENGTH} characters')
    try:
        get_login_record(company_id, email)
    except RecordNotFound:
        pass
    else:
        raise RecordAlreadyExists(f'User with email {email} already exists')

    user = User(
        company_id=company_id,
        id_=str(uuid4()),
        login=email,
        email=email,
        phone=body.get('phone'),
        first_name=body.get('first_name'),
        last_name=body.get('last_name'),
        role=DEFAULT_USER_ROLE
    )
    user.create_db_record()
    create_login_record(company_id, email, user.id_, password)
    logger.info(f'endpoint_register ::: user_id={user.id_} registered')
    return auth_response(user, status_code=http201)


@utils_app.log_start_finish
def endpoint_login(request: Request) -> Response:
    set_current_request_id(request)
    company_id = utils_auth.get_company_id_by_request(request)
    email, password = validate_credentials(utils_data.parse_raw_body(request))
    try:
        login_record = get_login_record(company_id, email)
    except RecordNotFound:
        raise NotAuthorizedException('Wrong email or password')
    if not verify_password(password, login_record.get('password_hash')):
        logger.warning(f'endpoint_login ::: wrong password for {email=}')
        raise NotAuthorizedException('Wrong email or password')
    user = User.init_by_id(company_id, login_record['user_id'])
    logger.info(f'endpoint_login ::: user_id={user.id_} logged in')
    return auth_response(user)


@utils_auth.authenticate
@utils_app.log_start_finish
def endpoint_logout(request: Request) -> Response:
    auth_result = request.auth_result
    utils_auth.revoke_token(auth_result['company_id'], auth_result['claims'])
    return Response(status_code=http200, body={'message': 'Logged out successfully'})

import functools
import os
from datetime import datetime, timedelta, timezone
from typing import Dict
from uuid import uuid4

import jwt
from chalice.app import Request

from chalicelib.constants import keys_structure
from chalicelib.constants.constants import DEFAULT_JWT_TTL_MINUTES
from chalicelib.utils import exceptions as utils_exceptions, db as utils_db
from chalicelib.utils.logger import log_request, logger, set_current_request_id

JWT_ALGORITHM = 'HS256'

host_company_id_map = {
    'test-domain.com': 'f770d5f7-6dd2-4cdf-842b-5fd0dd84a52a',
    '127.0.0.1:8000': 'f770d5f7-6dd2-4cdf-842b-5fd0dd84a52a',
    'localhost:8000': 'f770d5f7-6dd2-4cdf-842b-5fd0dd84a52a'
}


def get_company_id_by_host(host: str):
    try:
        return host_company_id_map[host]
    except KeyError:
        logger.warning(f'Error occurred while trying to get company id by {host=}')
        raise utils_exceptions.UnknownDomain(f'Unknown domain {host}')


def get_company_id_by_request(request: Request):
    return get_company_id_by_host(request.headers.get('host'))


def get_jwt_secret() -> str:
    secret = os.environ.get('JWT_SECRET')
    if not secret:
        raise RuntimeError('JWT_SECRET environment variable is not set')
    return secret


def generate_token(company_id: str, user_id: str, role: str, now: datetime = None) -> str:
    now = now or datetime.now(timezone.utc)
    ttl_minutes = int(os.environ.get('JWT_TTL_MINUTES', DEFAULT_JWT_TTL_MINUTES))
    payload = {
        'sub': user_id,
        'role': role,
        'company_id': company_id,
        'jti': str(uuid4()),
        'iat': now,
        'exp': now + timedelta(minutes=ttl_minutes)
    }
    return jwt.encode(payload, get_jwt_secret(), algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> Dict:
    try:
        return jwt.decode(token, get_jwt_secret(), algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise utils_exceptions.NotAuthorizedException('Token has expired')
    except jwt.PyJWTError as error:
        raise utils_exceptions.NotAuthorizedException(f'Token is not valid: {error}')


def get_bearer_token(request: Request) -> str:
    scheme, _, token = (request.headers.get('authorization') or '').partition(' ')
    if scheme.lower() != 'bearer' or not token.strip():
        raise utils_exceptions.NotAuthorizedException('Bearer token is missing')
    return token.strip()


def is_token_revoked(company_id: str, jti: str) -> bool:
    try:
        utils_db.get_db_item(
            partkey=keys_structure.revoked_tokens_pk.format(company_id=company_id),
            sortkey=keys_structure.revoked_tokens_sk.format(jti=jti)
        )
    except utils_exceptions.RecordNotFound:
        return False
    return True


def revoke_token(company_id: str, claims: Dict) -> None:
    """ Revocation record lives until the token would expire anyway, DynamoDB TTL removes it """
    utils_db.put_db_record({
        'partkey': keys_structure.revoked_tokens_pk.format(company_id=company_id),
        'sortkey': keys_structure.revoked_tokens_sk.format(jti=claims['jti']),
        'user_id': claims['sub'],
        'ttl_': int(claims['exp'])
    })
    logger.info(f"revoke_token ::: token of user_id={claims['sub']} revoked")


def get_user_role_and_permissions(company_id, user_id):
    try:
        user_item = utils_db.get_db_item(
            partkey=keys_structure.users_pk.format(company_id=company_id),
            sortkey=keys_structure.users_sk.format(user_id=user_id)
        )
    except utils_exceptions.RecordNotFound:
        raise utils_exceptions.NotAuthorizedException('User of the token does not exist')
    return user_item.get('role'), user_item.get('permissions_', {})


def get_auth_result(request: Request) -> Dict:
    company_id = get_company_id_by_request(request)
    claims = decode_token(get_bearer_token(request))
    if claims.get('company_id') != company_id:
        raise utils_exceptions.NotAuthorizedException('Token was issued for another company')
    if is_token_revoked(company_id, claims['jti']):
        raise utils_exceptions.NotAuthorizedException('Token has been revoked')
    user_role, permissions = get_user_role_and_permissions(company_id, claims['sub'])
    return {'user_id': claims['sub'], 'role': user_role, 'company_id': company_id,
            'permissions': permissions, 'claims': claims}


def authenticate(func):
    """
    Wrapper for functions which require user's authentication
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request = args[0]
        set_current_request_id(request)
        log_request(request)
        try:
            setattr(request, 'auth_result', get_auth_result(request))
        except utils_exceptions.NotAuthorizedException as err:
            logger.warning(f"authenticate ::: {str(err)}")
            raise
        logger.info(f'authenticate ::: SUCCESS, func.__name__ {func.__name__}')
        return func(*args, **kwargs)

    return result_auth


def authenticate_class(func):
    """
    Wrapper for class methods which require user's authentication
    """

    @functools.wraps(func)
    def result_auth(*args, **kwargs):
        request = args[1]
        set_current_request_id(request)
        log_request(request)
        try:
            auth_result = get_auth_result(request)
        except utils_exceptions.NotAuthorizedException as err:
            logger.warning(f"authenticate_class ::: {str(err)}")
            raise
        setattr(request, 'auth_result', auth_result)
        logger.info(f"authenticate_class ::: SUCCESS, user_id={auth_result['user_id']} role={auth_result['role']}")
        return func(*args, **kwargs)

    return result_auth


def check_role(auth_result: Dict, *roles: str) -> None:
    if auth_result.get('role') not in roles:
        raise utils_exceptions.AccessDenied(f"Role {auth_result.get('role')} is not allowed, expected one of {roles}")


def has_restaurant_permission(auth_result: Dict, restaurant_id: str) -> bool:
    if auth_result.get('role') == 'admin':
        return True
    return auth_result.get('role') == 'restaurant_manager' and \
        restaurant_id in auth_result.get('permissions', {}).get('restaurants', {})


def check_restaurant_permission(auth_result: Dict, restaurant_id: str) -> None:
    if not has_restaurant_permission(auth_result, restaurant_id):
        raise utils_exceptions.AccessDenied(f"Access to restaurant_id={restaurant_id} denied")

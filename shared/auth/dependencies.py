"""Dependencies de autenticación para FastAPI"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Dict
from shared.auth.jwt_handler import verify_token


security = HTTPBearer()

# Roles que pueden operar un scanner; el permiso por evento se revisa en el check-in
SCANNER_ROLES = ('scanner', 'organizer', 'admin')


def user_from_claims(claims: Dict) -> Dict:
    '''Usuario normalizado a partir de los claims del JWT'''
    role = claims.get('role') or claims.get('app_metadata', {}).get('role') or 'student'
    return {
        'user_id': claims.get('sub') or claims.get('user_id'),
        'email': claims.get('email'),
        'role': role,
    }


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict:
    '''Usuario autenticado por el token bearer'''
    claims = await verify_token(credentials.credentials)
    if claims is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido o expirado',
            headers={'WWW-Authenticate': 'Bearer'},
        )

    user = user_from_claims(claims)
    if not user['user_id']:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail='Token inválido: falta user_id',
        )
    return user


async def get_current_scanner(
    current_user: Dict = Depends(get_current_user)
) -> Dict:
    '''Operador de scanner: scanner, organizer o admin'''
    if current_user.get('role') not in SCANNER_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Se requieren permisos de scanner'
        )
    return current_user

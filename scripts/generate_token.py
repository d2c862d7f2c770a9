#!/usr/bin/env python3
"""Script para generar tokens JWT de prueba (estudiante, organizer, scanner)"""
import sys
import os
from datetime import timedelta

# Agregar directorio raíz al path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.auth.jwt_handler import create_access_token


def generate_token(user_id: str, email: str = None, role: str = "student", hours: int = 12):
    """Generar token JWT"""
    data = {
        "sub": user_id,
        "email": email or f"{user_id}@campus.edu",
        "role": role,
    }
    return create_access_token(data, expires_delta=timedelta(hours=hours))


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Generar token JWT de prueba")
    parser.add_argument("--user-id", required=True, help="ID del usuario")
    parser.add_argument("--email", help="Email del usuario")
    parser.add_argument("--role", default="student", choices=["student", "organizer", "admin", "scanner"], help="Rol del usuario")
    parser.add_argument("--hours", type=int, default=12, help="Horas de validez")

    args = parser.parse_args()

    token = generate_token(args.user_id, args.email, args.role, args.hours)
    print(f"\nToken generado:")
    print(token)
    print(f"\nPara usar en curl:")
    print(f'curl -H "Authorization: Bearer {token}" http://localhost:8000/api/v1/tickets/events/1/check-in/stats')
    print()

from argon2 import PasswordHasher, Type

from app.src.constants import ARGON2_MEMORY_COST, ARGON2_PARALLELISM, ARGON2_TIME_COST

passwordHasher = PasswordHasher(
    time_cost=ARGON2_TIME_COST,
    memory_cost=ARGON2_MEMORY_COST,
    parallelism=ARGON2_PARALLELISM,
    encoding="utf-8",
    type=Type.ID,
)


def makePassword(password: str) -> str:
    """
    Hash an account password with the configured Argon2id parameters.

    Accounts are created by admins and the setup script only, there is no
    login in this server, so stored hashes are never verified here.

    Args:
        password (str): The plain-text password chosen for the account.

    Returns:
        str: The encoded Argon2id hash, parameters included.
    """
    return passwordHasher.hash(password)

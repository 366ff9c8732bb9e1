"""
密码哈希工具
使用加盐 PBKDF2-HMAC-SHA256 保存登录密码，数据库中不保存明文
存储格式：pbkdf2_sha256$<迭代次数>$<盐 Base64>$<哈希 Base64>
"""
from Crypto.Hash import SHA256
from Crypto.Protocol.KDF import PBKDF2
from Crypto.Random import get_random_bytes
import base64
import hmac

from .config import settings

ALGORITHM = "pbkdf2_sha256"
SALT_SIZE = 16
KEY_SIZE = 32


def _derive(password: str, salt: bytes, iterations: int) -> bytes:
    return PBKDF2(password.encode('utf-8'), salt, dkLen=KEY_SIZE, count=iterations, hmac_hash_module=SHA256)


def hash_password(plaintext: str, iterations: int = None) -> str:
    """
    生成密码哈希

    Args:
        plaintext: 明文密码
        iterations: 迭代次数，默认取配置

    Returns:
        可直接入库的哈希字符串
    """
    if not plaintext:
        raise ValueError("密码不能为空")

    iterations = iterations or settings.PASSWORD_HASH_ITERATIONS
    salt = get_random_bytes(SALT_SIZE)
    derived = _derive(plaintext, salt, iterations)

    return "$".join([
        ALGORITHM,
        str(iterations),
        base64.b64encode(salt).decode('utf-8'),
        base64.b64encode(derived).decode('utf-8'),
    ])


def verify_password(plaintext: str, hashed: str) -> bool:
    """校验密码，格式不合法时返回 False"""
    if not plaintext or not hashed:
        return False

    try:
        algorithm, iterations, salt_b64, hash_b64 = hashed.split("$")
        if algorithm != ALGORITHM:
            return False
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(hash_b64)
        derived = _derive(plaintext, salt, int(iterations))
    except (ValueError, TypeError):
        return False

    return hmac.compare_digest(derived, expected)

import secrets

DEFAULT_OTP_LENGTH = 6


def generate_otp(length: int = DEFAULT_OTP_LENGTH) -> str:
    """
    Generate a random numeric OTP from the OS CSPRNG.

    The value is drawn uniformly from [10**(length-1), 10**length - 1], so a
    6 digit code is never zero-padded.
    """
    if length < 1:
        raise ValueError("OTP length must be positive")
    low = 10 ** (length - 1)
    high = 10 ** length - 1
    return str(low + secrets.randbelow(high - low + 1))

"""KYC verification bot: applicant registration and reviewer approval over Telegram."""

__version__ = "0.1.0"

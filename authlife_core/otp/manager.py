"""
OTP Manager
===========
Issues, delivers and verifies one-time passcodes.

Verification is a sequence of conditional storage writes, so the
guarantees hold across processes:
- at most one active challenge per (destination, channel)
- attempt_count never exceeds max_attempts
- a challenge is consumed by at most one caller
"""

import asyncio
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional
import structlog

from authlife_core.audit import AuditAction, AuditRecorder
from authlife_core.config import OTPConfig
from authlife_core.database import utcnow
from authlife_core.delivery import DeliveryDispatcher, DeliveryError
from authlife_core.errors import DeliveryFailed, DuplicateKey, RateLimited, ValidationError
from authlife_core.logging import mask_destination
from authlife_core.metrics import record_otp_request, record_otp_verification
from authlife_core.rate_limit import StorageRateLimiter
from .destinations import canonicalize_destination
from .hashing import generate_otp, generate_salt, hash_otp, is_well_formed_code, verify_otp_hash
from .models import Challenge, ChallengeTicket, Channel, VerificationResult, VerificationStatus
from .store import ChallengeStore

logger = structlog.get_logger(__name__)

# Concurrent requests for one pair race on the active-challenge index
ISSUE_CONFLICT_RETRIES = 3

MESSAGE_TEMPLATE = "Your {sender}verification code is {code}. It expires in {minutes} minutes."


def render_message(code: str, expiry_seconds: int, sender_name: str = "") -> str:
    minutes = max(expiry_seconds // 60, 1)
    sender = f"{sender_name.strip()} " if sender_name and sender_name.strip() else ""
    return MESSAGE_TEMPLATE.format(sender=sender, code=code, minutes=minutes)


class OTPManager:
    """Owns the challenge state machine."""

    def __init__(
        self,
        store: ChallengeStore,
        dispatcher: DeliveryDispatcher,
        rate_limiter: Optional[StorageRateLimiter] = None,
        recorder: Optional[AuditRecorder] = None,
        config: Optional[OTPConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.rate_limiter = rate_limiter
        self.recorder = recorder
        self.config = config or OTPConfig()
        self.clock = clock

    async def _audit(self, action: AuditAction, **kwargs) -> None:
        if self.recorder is not None:
            await self.recorder.record(action, **kwargs)

    async def request_challenge(
        self,
        destination: str,
        channel: Channel = Channel.SMS,
        account_id: Optional[str] = None,
        timeout: Optional[float] = None,
        source_ip: Optional[str] = None,
    ) -> ChallengeTicket:
        """
        Create a challenge and deliver its code.

        Args:
            destination: Phone number (``whatsapp:`` prefix and punctuation allowed)
            channel: SMS or WhatsApp
            account_id: Account the challenge is tied to, if known
            timeout: Delivery timeout in seconds (config default if omitted)
            source_ip: Client address, recorded on the audit event

        Returns:
            ChallengeTicket

        Raises:
            ValidationError: Bad destination
            RateLimited: Too many requests for this destination
            DeliveryFailed: Challenge was created but the code was not delivered
        """
        channel = Channel.parse(channel)
        destination = canonicalize_destination(destination, channel)
        masked = mask_destination(destination)

        if self.rate_limiter is not None:
            info = await self.rate_limiter.check(f"otp:{channel.value}:{destination}")
            if not info.allowed:
                record_otp_request(channel.value, "rate_limited")
                await self._audit(
                    AuditAction.OTP_REQUESTED,
                    actor_ref=account_id,
                    destination=destination,
                    source_ip=source_ip,
                    blocked=True,
                )
                logger.warning(
                    "OTP request rate limited",
                    destination=masked,
                    channel=channel.value,
                    retry_after=info.retry_after,
                )
                raise RateLimited(
                    "Too many verification requests. Please try again later.",
                    retry_after=info.retry_after,
                )

        code = generate_otp(self.config.length)
        challenge = await self._issue(destination, channel, code, account_id)

        await self._audit(
            AuditAction.OTP_REQUESTED,
            actor_ref=account_id,
            destination=destination,
            source_ip=source_ip,
            blocked=False,
        )
        logger.info(
            "OTP challenge created",
            challenge_id=challenge.id,
            destination=masked,
            channel=channel.value,
            expires_at=challenge.expires_at.isoformat(),
        )

        body = render_message(code, self.config.expiry_seconds, self.config.sender_name)
        delivery_timeout = timeout if timeout is not None else self.config.delivery_timeout
        try:
            receipt = await asyncio.wait_for(
                self.dispatcher.send(destination, channel, body),
                timeout=delivery_timeout,
            )
        except asyncio.TimeoutError as e:
            record_otp_request(channel.value, "delivery_timeout")
            logger.error(
                "OTP delivery timed out",
                challenge_id=challenge.id,
                channel=channel.value,
                timeout=delivery_timeout,
            )
            raise DeliveryFailed(
                "Delivery timed out. Please request a new code.",
                challenge_id=challenge.id,
                transient=True,
            ) from e
        except DeliveryError as e:
            record_otp_request(channel.value, "delivery_failed")
            logger.error(
                "OTP delivery failed",
                challenge_id=challenge.id,
                channel=channel.value,
                transient=e.transient,
                error=str(e),
            )
            raise DeliveryFailed(
                f"Failed to send verification code: {e}",
                challenge_id=challenge.id,
                transient=e.transient,
            ) from e

        record_otp_request(channel.value, "sent")
        return ChallengeTicket(
            challenge_id=challenge.id,
            destination=destination,
            channel=channel,
            expires_at=challenge.expires_at,
            delivery_id=receipt.delivery_id,
        )

    async def _issue(
        self,
        destination: str,
        channel: Channel,
        code: str,
        account_id: Optional[str],
    ) -> Challenge:
        last_error = None
        for attempt in range(1, ISSUE_CONFLICT_RETRIES + 1):
            now = self.clock()
            salt = generate_salt()
            challenge = Challenge(
                id=str(uuid.uuid4()),
                destination=destination,
                channel=channel,
                code_hash=hash_otp(code, destination, salt, self.config.hash_pepper),
                salt=salt,
                created_at=now,
                expires_at=now + timedelta(seconds=self.config.expiry_seconds),
                max_attempts=self.config.max_attempts,
                account_id=account_id,
            )
            try:
                return await self.store.issue(challenge, now)
            except DuplicateKey as e:
                last_error = e
                logger.info(
                    "Concurrent OTP request conflict",
                    destination=mask_destination(destination),
                    attempt=attempt,
                )
        raise last_error

    async def verify_challenge(
        self,
        destination: str,
        channel: Channel,
        submitted_code: str,
        source_ip: Optional[str] = None,
    ) -> VerificationResult:
        """
        Check a submitted code against the active challenge.

        Returns:
            VerificationResult with VERIFIED, NOT_FOUND, EXPIRED,
            EXHAUSTED or INVALID_CODE

        Raises:
            ValidationError: Bad destination or malformed code (no attempt charged)
        """
        channel = Channel.parse(channel)
        destination = canonicalize_destination(destination, channel)
        if not is_well_formed_code(submitted_code, self.config.length):
            raise ValidationError(
                f"Code must be exactly {self.config.length} digits",
                field="code",
            )

        result = await self._verify(destination, channel, submitted_code)

        record_otp_verification(channel.value, result.status.value)
        await self._audit(
            AuditAction.OTP_VERIFIED if result.ok else AuditAction.OTP_FAILED,
            actor_ref=result.account_id,
            destination=destination,
            source_ip=source_ip,
            blocked=False,
        )
        logger.info(
            "OTP verification",
            challenge_id=result.challenge_id,
            destination=mask_destination(destination),
            channel=channel.value,
            status=result.status.value,
            remaining=result.attempts_remaining,
        )
        return result

    async def _verify(self, destination: str, channel: Channel, code: str) -> VerificationResult:
        challenge = await self.store.find_active(destination, channel)
        if challenge is None:
            return VerificationResult(status=VerificationStatus.NOT_FOUND)

        if challenge.is_expired(self.clock()):
            return VerificationResult(
                status=VerificationStatus.EXPIRED,
                challenge_id=challenge.id,
            )

        if challenge.is_exhausted():
            return VerificationResult(
                status=VerificationStatus.EXHAUSTED,
                challenge_id=challenge.id,
                attempts_remaining=0,
            )

        attempt_count = await self.store.charge_attempt(challenge.id)
        if attempt_count is None:
            return VerificationResult(
                status=VerificationStatus.EXHAUSTED,
                challenge_id=challenge.id,
                attempts_remaining=0,
            )

        if not verify_otp_hash(
            code, destination, challenge.salt, challenge.code_hash, self.config.hash_pepper
        ):
            return VerificationResult(
                status=VerificationStatus.INVALID_CODE,
                challenge_id=challenge.id,
                attempts_remaining=max(challenge.max_attempts - attempt_count, 0),
            )

        if not await self.store.consume(challenge.id, self.clock()):
            # Another verifier consumed it, or a newer request superseded it
            return VerificationResult(
                status=VerificationStatus.NOT_FOUND,
                challenge_id=challenge.id,
            )

        return VerificationResult(
            status=VerificationStatus.VERIFIED,
            challenge_id=challenge.id,
            account_id=challenge.account_id,
        )

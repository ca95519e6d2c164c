import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

__all__ = ['RevocationStatusKind', 'RevocationStatus']


class RevocationStatusKind(enum.Enum):
    VALID = enum.auto()
    """
    The revocation source was consulted and does not list the certificate.
    """

    REVOKED = enum.auto()
    """
    The revocation source lists the certificate as revoked.
    """

    UNKNOWN = enum.auto()
    """
    The revocation source was consulted, but its answer could not be
    obtained or trusted.
    """

    NOT_APPLICABLE = enum.auto()
    """
    There was no usable revocation source to consult.
    """


@dataclass(frozen=True)
class RevocationStatus:
    """
    Result of a single revocation check. CRL and OCSP checks each produce
    their own status; they are never merged.

    Use the constructor class methods rather than instantiating this class
    directly.
    """

    kind: RevocationStatusKind

    by: Optional[str] = None
    """
    The endpoint that reported the revocation (only for revoked statuses).
    """

    detail: Optional[str] = None
    """
    Human readable detail. For unknown and not-applicable statuses, this
    is the reason why no definitive answer was reached.
    """

    revocation_time: Optional[datetime] = None
    revocation_reason: Optional[str] = None

    @classmethod
    def valid(cls) -> 'RevocationStatus':
        return cls(RevocationStatusKind.VALID)

    @classmethod
    def revoked(
        cls,
        by: str,
        detail: str,
        revocation_time: Optional[datetime] = None,
        revocation_reason: Optional[str] = None,
    ) -> 'RevocationStatus':
        return cls(
            RevocationStatusKind.REVOKED,
            by=by,
            detail=detail,
            revocation_time=revocation_time,
            revocation_reason=revocation_reason,
        )

    @classmethod
    def unknown(cls, reason: str) -> 'RevocationStatus':
        return cls(RevocationStatusKind.UNKNOWN, detail=reason)

    @classmethod
    def not_applicable(cls, reason: str) -> 'RevocationStatus':
        return cls(RevocationStatusKind.NOT_APPLICABLE, detail=reason)

    @property
    def reason(self) -> Optional[str]:
        if self.kind in (
            RevocationStatusKind.UNKNOWN,
            RevocationStatusKind.NOT_APPLICABLE,
        ):
            return self.detail
        return None

    @property
    def is_valid(self) -> bool:
        return self.kind == RevocationStatusKind.VALID

    @property
    def is_revoked(self) -> bool:
        return self.kind == RevocationStatusKind.REVOKED

    def describe(self) -> str:
        if self.kind == RevocationStatusKind.VALID:
            return 'Valid'
        elif self.kind == RevocationStatusKind.REVOKED:
            result = f"Revoked by {self.by} ({self.detail})"
            if self.revocation_time is not None:
                when = self.revocation_time.strftime('%Y-%m-%d %H:%M:%S')
                result += f" at {when}"
            if self.revocation_reason is not None:
                result += f", reason: {self.revocation_reason}"
            return result
        elif self.kind == RevocationStatusKind.UNKNOWN:
            return f"Unknown: {self.detail}"
        else:
            return f"Not applicable: {self.detail}"

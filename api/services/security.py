"""File screening and security metrics."""
import re
from typing import List, Optional
from shared.models import FileDescriptor, SecurityMetrics, Severity, ValidationResult, ViolationType
from shared.policy import PolicyHolder
from api.services.violations import ViolationRecorder
import logging

logger = logging.getLogger(__name__)

EXECUTABLE_EXTENSIONS = ("exe", "bat", "cmd", "scr", "pif", "com", "dll", "msi")
SCRIPT_EXTENSIONS = ("js", "vbs", "jar", "app")
DOCUMENT_EXTENSIONS = ("pdf", "doc", "docx", "xls", "xlsx", "txt", "jpg", "jpeg", "png", "gif")

_RISKY = "|".join(EXECUTABLE_EXTENSIONS + SCRIPT_EXTENSIONS)

SUSPICIOUS_FILENAME_PATTERNS = [
    re.compile(rf"\.({'|'.join(EXECUTABLE_EXTENSIONS)})$", re.IGNORECASE),
    re.compile(rf"\.({'|'.join(SCRIPT_EXTENSIONS)})$", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"\.\."),
    re.compile(r'[<>:"|?*\x00-\x1f]'),
    re.compile(r"^(con|prn|aux|nul|com[1-9]|lpt[1-9])(\..*)?$", re.IGNORECASE),
    # invoice.exe.pdf
    re.compile(rf"\.({_RISKY})\.[^.]+$", re.IGNORECASE),
    # report.pdf.exe
    re.compile(rf"\.({'|'.join(DOCUMENT_EXTENSIONS)})\.({_RISKY})$", re.IGNORECASE),
]

EXECUTABLE_SIGNATURES = {
    b"MZ": "PE",
    b"\x7fELF": "ELF",
    b"\xcf\xfa\xed\xfe": "Mach-O",
    b"\xfe\xed\xfa\xce": "Mach-O (big-endian)",
}


def is_suspicious_filename(name: str) -> bool:
    """Check a filename against the suspicious pattern set."""
    return any(pattern.search(name) for pattern in SUSPICIOUS_FILENAME_PATTERNS)


def detect_executable_signature(content: bytes) -> Optional[str]:
    """Return the executable format whose magic number starts content, if any."""
    for signature, label in EXECUTABLE_SIGNATURES.items():
        if content.startswith(signature):
            return label
    return None


class SecurityValidator:
    """Screens incoming files; every check runs and every hit is recorded."""

    def __init__(self, policy: PolicyHolder, recorder: ViolationRecorder):
        self.policy = policy
        self.recorder = recorder

    def validate(self, file: FileDescriptor, actor_id: Optional[str]) -> ValidationResult:
        """Validate a file against the current policy.

        Args:
            file: Incoming file descriptor (name, media type, size, leading bytes)
            actor_id: Uploading actor

        Returns:
            ValidationResult; accepted only when no check fired
        """
        try:
            violations = self._run_checks(file, actor_id)
        except Exception as e:
            logger.error(f"Error validating file {file.name!r}: {e}")
            violations = [f"validation failed: {e}"]
        return ValidationResult(accepted=not violations, violations=violations)

    def _run_checks(self, file: FileDescriptor, actor_id: Optional[str]) -> List[str]:
        policy = self.policy.current
        violations: List[str] = []

        if file.size_bytes > policy.max_file_size_bytes:
            size_mb = file.size_bytes / 1024 / 1024
            limit_mb = policy.max_file_size_bytes / 1024 / 1024
            violations.append(f"file too large: {size_mb:.2f}MB exceeds limit of {limit_mb:.2f}MB")
            self.recorder.record(
                ViolationType.FILE_SIZE,
                Severity.MEDIUM,
                actor_id,
                {"file_name": file.name, "size": file.size_bytes, "limit": policy.max_file_size_bytes}
            )

        if file.media_type not in policy.allowed_media_types:
            violations.append(f"type not allowed: {file.media_type}")
            self.recorder.record(
                ViolationType.FILE_TYPE,
                Severity.HIGH,
                actor_id,
                {"file_name": file.name, "type": file.media_type, "allowed_types": sorted(policy.allowed_media_types)}
            )

        if is_suspicious_filename(file.name):
            violations.append("suspicious filename: name contains suspicious characters or patterns")
            self.recorder.record(
                ViolationType.SUSPICIOUS_ACTIVITY,
                Severity.HIGH,
                actor_id,
                {"file_name": file.name, "reason": "suspicious_filename"}
            )

        signature = detect_executable_signature(file.content[:16])
        if signature:
            violations.append(f"executable signature detected: {signature}")
            self.recorder.record(
                ViolationType.SUSPICIOUS_ACTIVITY,
                Severity.CRITICAL,
                actor_id,
                {"file_name": file.name, "reason": "executable_signature", "format": signature}
            )

        return violations


def collect_security_metrics(recorder: ViolationRecorder, login_guard, hours_back: float = 24) -> SecurityMetrics:
    """Aggregate recent violations with the login guard's lockout state."""
    summary = recorder.summarize(hours_back=hours_back)
    return SecurityMetrics(
        total_violations=sum(summary["by_type"].values()),
        violations_by_type=summary["by_type"],
        violations_by_severity=summary["by_severity"],
        suspicious_ips=login_guard.suspicious_ip_count(),
        blocked_identifiers=login_guard.locked_out_count()
    )

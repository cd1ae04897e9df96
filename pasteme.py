#!/usr/bin/env python3
"""
Paste.me - Share your pastes securely from the command line.

Overview:
- Encrypts the paste name and body client-side using AES-256-GCM and PBKDF2-HMAC-SHA256.
- Generates a fresh 256-bit passphrase per paste; it never leaves the client.
- Submits the encrypted envelopes to the Paste.me API in a single JSON POST.
- Prints a share URL whose fragment carries the passphrase.
- Reads the paste body from a pipe or from --body (piped data wins).
- Features rotating file logging and colored console output.

Dependencies:
- Python 3.8+
- cryptography (pip install cryptography)
- requests (pip install requests)
- colorama (pip install colorama)

Usage:
    python pasteme.py --name todo --body "buy milk" --expire 60
    cat notes.txt | python pasteme.py --name notes --expire 1440 --source
    python pasteme.py --name secret --body "one time only" --destroy
    python pasteme.py --name todo --body "buy milk" --expire 60 --dry-run --debug

Envelope (one per encrypted field):
- salt: 8 bytes (random, for PBKDF2 key derivation), hex
- iv: 12 bytes (random, AES-256-GCM nonce), hex
- data: ciphertext + 16-byte GCM tag, hex

Share URL: https://paste.me/paste/<uuid>#<passphrase>
The fragment is never transmitted to the server and is the only way to decrypt the paste.

Exit codes:
- 1: validation error (missing name/body, invalid expiration)
- 12: secure random source failure
- 13: cipher initialization failure
- 14: authentication failure while decrypting
- 15: transport failure (connection, timeout, TLS)
- 16: invalid response from the server
- 17: paste rejected by the server
"""
import argparse
import json
import logging
import secrets
import sys
from dataclasses import dataclass, field, replace
from importlib import metadata
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, TextIO, Tuple

import requests
from colorama import init, Fore, Style
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

# Initialize colorama for colored console output
init(autoreset=True)

# Program metadata
PROGRAM_VERSION = "0.0.2"
PROGRAM_NAME = "Paste.me"

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PasteConfig:
    """Configuration constants for Paste.me."""
    API_URL: str = "https://api.paste.me/api/paste/new"  # Endpoint receiving new pastes
    SHARE_URL: str = "https://paste.me"  # Base of the URL handed to the user
    PASSPHRASE_SEED_LENGTH: int = 28  # Random bytes hashed into the passphrase
    SALT_LENGTH: int = 8  # Bytes for random salt (PBKDF2)
    NONCE_LENGTH: int = 12  # Bytes for AES-256-GCM nonce
    KEY_LENGTH: int = 32  # 256-bit AES key
    PBKDF2_ITERATIONS: int = 1000
    VALID_EXPIRE_MINUTES: Tuple[int, ...] = (5, 10, 60, 1440, 10080, 43800)
    HTTP_TIMEOUT: Optional[float] = None  # Seconds; None waits indefinitely
    LOG_FILE: str = "pasteme.log"
    LOG_MAX_SIZE: int = 10 * 1024 * 1024  # Max log file size (10 MB)
    LOG_BACKUP_COUNT: int = 3  # Number of backup log files


class PasteError(Exception):
    """Base class for failures that end a run with a distinct exit code."""
    exit_code = 1


class ValidationError(PasteError, ValueError):
    """Missing name or body, or an expiration outside the allowed set."""
    exit_code = 1


class RandomnessError(PasteError):
    """The secure random source failed."""
    exit_code = 12


class CipherInitError(PasteError):
    """Key derivation or cipher setup rejected its parameters."""
    exit_code = 13


class AuthenticationError(PasteError):
    """Sealed data failed authentication (wrong passphrase or tampered envelope)."""
    exit_code = 14


class TransportError(PasteError):
    """The request never produced an HTTP response."""
    exit_code = 15


class ProtocolError(PasteError):
    """A response or envelope did not have the expected shape."""
    exit_code = 16


class ServerRejectedError(PasteError):
    """The server answered with a non-200 status."""
    exit_code = 17


@dataclass(frozen=True)
class Envelope:
    """Result of encrypting one field: hex-encoded salt, nonce and sealed ciphertext."""
    salt: str
    iv: str
    data: str

    def to_dict(self) -> dict:
        return {"data": self.data, "iv": self.iv, "salt": self.salt}


@dataclass(frozen=True)
class PasteFile:
    """An encrypted attachment: file name and file content envelopes."""
    name: Envelope
    content: Envelope

    def to_dict(self) -> dict:
        return {"name": self.name.to_dict(), "content": self.content.to_dict()}


@dataclass
class Paste:
    """A paste ready to be serialized for the API."""
    name: Envelope
    body: Envelope
    files: List[PasteFile] = field(default_factory=list)
    source_code: bool = False
    self_destruct: bool = False
    expires_minutes: int = 0

    def to_dict(self) -> dict:
        """
        Build the request body expected by the API.

        Returns:
            dict: JSON-serializable request body.
        """
        return {
            "paste": {
                "name": self.name.to_dict(),
                "body": self.body.to_dict(),
            },
            "files": [f.to_dict() for f in self.files],
            "sourceCode": self.source_code,
            "selfDestruct": self.self_destruct,
            "expiresMinutes": self.expires_minutes,
        }


@dataclass(frozen=True)
class PasteResult:
    """Server acknowledgement of a stored paste."""
    uuid: str
    msg: str = ""


def is_valid_minutes(minutes, config: PasteConfig = PasteConfig()) -> bool:
    """Return True if the expiration is one of the values the service accepts."""
    return minutes in config.VALID_EXPIRE_MINUTES


class PasteKeyManager:
    """Manages random data generation, passphrase creation and key derivation."""
    def __init__(self, config: PasteConfig):
        self.config = config
        self.logger = logging.getLogger(__name__)

    def random_bytes(self, length: int) -> bytes:
        """
        Read cryptographically secure random bytes.

        Args:
            length: Number of bytes.

        Returns:
            bytes: Random bytes.

        Raises:
            RandomnessError: If the system random source fails.
        """
        try:
            return secrets.token_bytes(length)
        except (OSError, NotImplementedError) as e:
            self.logger.error(f"Secure random source failed: {e}")
            raise RandomnessError(f"Secure random source unavailable: {e}") from e

    def generate_passphrase(self) -> str:
        """
        Generate the per-paste passphrase: SHA-256 of fresh random bytes, hex-encoded.

        Returns:
            str: 64-character hex passphrase.
        """
        seed = self.random_bytes(self.config.PASSPHRASE_SEED_LENGTH)
        digest = hashes.Hash(hashes.SHA256())
        digest.update(seed)
        passphrase = digest.finalize().hex()
        self.logger.debug(f"Generated passphrase from {len(seed)} random bytes")
        return passphrase

    def generate_salt(self) -> bytes:
        salt = self.random_bytes(self.config.SALT_LENGTH)
        self.logger.debug(f"Generated salt: {salt.hex()}")
        return salt

    def generate_nonce(self) -> bytes:
        nonce = self.random_bytes(self.config.NONCE_LENGTH)
        self.logger.debug(f"Generated nonce: {nonce.hex()}")
        return nonce

    def derive_key(self, passphrase: str, salt: bytes) -> bytes:
        """
        Derive a 256-bit AES key using PBKDF2-HMAC-SHA256.

        Args:
            passphrase: Passphrase string (UTF-8 encoded).
            salt: Random salt for key derivation.

        Returns:
            bytes: Derived key of KEY_LENGTH bytes.

        Raises:
            CipherInitError: If the KDF rejects its parameters.
        """
        self.logger.debug(f"Deriving key with salt: {salt.hex()}")
        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=self.config.KEY_LENGTH,
                salt=salt,
                iterations=self.config.PBKDF2_ITERATIONS,
            )
            return kdf.derive(passphrase.encode('utf-8'))
        except (ValueError, TypeError) as e:
            self.logger.error(f"Key derivation failed: {e}")
            raise CipherInitError(f"Error deriving key: {e}") from e


class EnvelopeEncryptor:
    """Seals and opens single text fields with AES-256-GCM."""
    def __init__(self, config: PasteConfig, key_manager: Optional[PasteKeyManager] = None):
        self.config = config
        self.key_manager = key_manager or PasteKeyManager(config)
        self.logger = logging.getLogger(__name__)

    def _cipher(self, key: bytes, nonce: bytes) -> AESGCM:
        if len(key) != self.config.KEY_LENGTH:
            raise CipherInitError(f"Invalid key length: {len(key)} bytes, expected {self.config.KEY_LENGTH}")
        if len(nonce) != self.config.NONCE_LENGTH:
            raise CipherInitError(f"Invalid nonce length: {len(nonce)} bytes, expected {self.config.NONCE_LENGTH}")
        try:
            return AESGCM(key)
        except ValueError as e:
            self.logger.error(f"Cipher setup failed: {e}")
            raise CipherInitError(f"Error initializing cipher: {e}") from e

    def encrypt(self, passphrase: str, plaintext: str) -> Envelope:
        """
        Encrypt a text field under a key derived from the passphrase.

        A fresh salt and nonce are drawn on every call, so identical inputs
        never produce identical envelopes.

        Args:
            passphrase: Per-paste passphrase.
            plaintext: Field contents.

        Returns:
            Envelope: Hex-encoded salt, nonce and ciphertext with tag appended.

        Raises:
            ValidationError: If the plaintext cannot be encoded as UTF-8.
            RandomnessError: If salt or nonce cannot be generated.
            CipherInitError: If the key or nonce is rejected.
        """
        try:
            encoded = plaintext.encode('utf-8')
        except UnicodeEncodeError as e:
            self.logger.error(f"Plaintext is not valid UTF-8: {e}")
            raise ValidationError("Your paste is not valid UTF-8 text.") from e
        salt = self.key_manager.generate_salt()
        key = self.key_manager.derive_key(passphrase, salt)
        nonce = self.key_manager.generate_nonce()
        aesgcm = self._cipher(key, nonce)
        try:
            sealed = aesgcm.encrypt(nonce, encoded, None)
        except (ValueError, OverflowError) as e:
            self.logger.error(f"Encryption failed: {e}")
            raise CipherInitError(f"Error encrypting data: {e}") from e
        self.logger.debug(f"Sealed {len(plaintext)} characters into {len(sealed)} bytes")
        return Envelope(salt=salt.hex(), iv=nonce.hex(), data=sealed.hex())

    def decrypt(self, passphrase: str, envelope: Envelope) -> str:
        """
        Open an envelope produced by encrypt().

        Args:
            passphrase: Passphrase the envelope was sealed with.
            envelope: Envelope to open.

        Returns:
            str: Original plaintext.

        Raises:
            ProtocolError: If envelope fields are not valid hex.
            AuthenticationError: If the passphrase is wrong or the envelope was altered.
        """
        try:
            salt = bytes.fromhex(envelope.salt)
            nonce = bytes.fromhex(envelope.iv)
            sealed = bytes.fromhex(envelope.data)
        except ValueError as e:
            self.logger.error(f"Malformed envelope: {e}")
            raise ProtocolError(f"Malformed envelope: {e}") from e

        key = self.key_manager.derive_key(passphrase, salt)
        aesgcm = self._cipher(key, nonce)
        try:
            plaintext = aesgcm.decrypt(nonce, sealed, None)
        except InvalidTag as e:
            self.logger.error("Decryption failed: invalid passphrase or corrupted data")
            raise AuthenticationError("Invalid passphrase or corrupted data") from e
        return plaintext.decode('utf-8')


class PasteSubmitter:
    """Builds pastes from user input and posts them to the API."""
    def __init__(self, config: PasteConfig, encryptor: Optional[EnvelopeEncryptor] = None):
        self.config = config
        self.encryptor = encryptor or EnvelopeEncryptor(config)
        self.logger = logging.getLogger(__name__)

    def validate_name(self, name: str) -> None:
        if not name:
            raise ValidationError("Please provide a name for your paste. Use the --help if in doubt.")

    def validate(self, name: str, body: str, expire: Optional[int], destroy: bool) -> None:
        """
        Check user input before anything is encrypted or sent.

        Raises:
            ValidationError: On empty name, empty body or invalid expiration.
        """
        self.validate_name(name)
        if not body:
            raise ValidationError(
                "Your paste has a length of 0. Try again, but this time try to put some content."
            )
        if not destroy and not is_valid_minutes(expire, self.config):
            raise ValidationError(
                "You did not provide a valid minutes flag. See --help for more insight on this one."
            )

    def compose(
        self,
        name: str,
        body: str,
        expire: Optional[int],
        destroy: bool,
        source: bool,
        passphrase: str,
    ) -> Paste:
        """
        Validate input and encrypt it into a Paste.

        Args:
            name: Paste title.
            body: Paste contents.
            expire: Expiration in minutes; ignored when destroy is set.
            destroy: Self-destruct after the first read.
            source: Mark the paste as source code.
            passphrase: Per-paste passphrase.

        Returns:
            Paste: Paste with both fields encrypted and no files.
        """
        self.validate(name, body, expire, destroy)
        return self.build(name, body, expire, destroy, source, passphrase)

    def build(
        self,
        name: str,
        body: str,
        expire: Optional[int],
        destroy: bool,
        source: bool,
        passphrase: str,
    ) -> Paste:
        """Encrypt already validated input into a Paste."""
        paste = Paste(
            name=self.encryptor.encrypt(passphrase, name),
            body=self.encryptor.encrypt(passphrase, body),
            files=[],
            source_code=source,
            self_destruct=destroy,
            expires_minutes=0 if destroy else expire,
        )
        self.logger.info(
            f"Composed paste: source_code={source}, self_destruct={destroy}, "
            f"expires_minutes={paste.expires_minutes}, body_length={len(body)}"
        )
        return paste

    def submit(self, paste: Paste) -> PasteResult:
        """
        POST the paste to the API once and interpret the response.

        Args:
            paste: Paste to send.

        Returns:
            PasteResult: Identifier and message returned by the server.

        Raises:
            TransportError: If no HTTP response was received.
            ServerRejectedError: If the status is not 200.
            ProtocolError: If a 200 response cannot be parsed.
        """
        headers = {"Content-Type": "application/json"}
        self.logger.debug(f"Posting paste to {self.config.API_URL}")
        try:
            resp = requests.post(
                self.config.API_URL,
                data=json.dumps(paste.to_dict()),
                headers=headers,
                timeout=self.config.HTTP_TIMEOUT,
            )
        except requests.RequestException as e:
            self.logger.error(f"Request to {self.config.API_URL} failed: {e}")
            raise TransportError(
                "There was some problem while sending the paste data. "
                "Please try again later or contact the site administrator."
            ) from e

        self.logger.debug(f"Server answered {resp.status_code} ({len(resp.content)} bytes)")
        if resp.status_code != 200:
            self.logger.error(f"Paste rejected with status {resp.status_code}: {resp.text[:500]}")
            raise ServerRejectedError(
                "There was some error while pasting your data. "
                "Please try again later or contact the Paste.me admin!"
            )
        return self.parse_response(resp)

    def parse_response(self, resp) -> PasteResult:
        invalid = "We received an invalid response from the server. Please contact the site administrator."
        try:
            payload = resp.json()
        except ValueError as e:
            self.logger.error(f"Response is not JSON: {e}")
            raise ProtocolError(invalid) from e

        paste = payload.get("paste") if isinstance(payload, dict) else None
        uuid = paste.get("uuid") if isinstance(paste, dict) else None
        if not isinstance(uuid, str) or not uuid:
            self.logger.error(f"Response has no paste uuid: {str(payload)[:500]}")
            raise ProtocolError(invalid)
        msg = payload.get("msg")
        result = PasteResult(uuid=uuid, msg=msg if isinstance(msg, str) else "")
        self.logger.info(f"Paste stored with uuid {result.uuid}: {result.msg}")
        return result

    def share_url(self, result: PasteResult, passphrase: str) -> str:
        return f"{self.config.SHARE_URL.rstrip('/')}/paste/{result.uuid}#{passphrase}"


def read_piped_text(stdin: TextIO) -> str:
    """
    Read all piped input as UTF-8 text.

    The underlying byte stream is read when available so undecodable input is
    reported instead of being smuggled through as surrogate escapes.

    Raises:
        ValidationError: If the input cannot be read or is not valid UTF-8.
    """
    raw = getattr(stdin, 'buffer', None)
    try:
        data = raw.read() if raw is not None else stdin.read()
    except (IOError, OSError) as e:
        logger.error(f"Failed to read paste from stdin: {e}")
        raise ValidationError(f"Could not read your paste from standard input: {e}") from e
    if isinstance(data, bytes):
        try:
            data = data.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.error(f"Piped input is not valid UTF-8: {e}")
            raise ValidationError("Your paste is not valid UTF-8 text.") from e
    logger.debug(f"Read {len(data)} characters from stdin")
    return data


def resolve_body(body: Optional[str], stdin: Optional[TextIO]) -> str:
    """
    Pick the paste text: piped stdin when it has content, otherwise --body.

    Args:
        body: Value of --body, if any.
        stdin: Standard input stream (None if unavailable).

    Returns:
        str: Paste text, possibly empty.

    Raises:
        ValidationError: If piped input cannot be read or decoded.
    """
    piped = ""
    if stdin is not None and not stdin.isatty():
        piped = read_piped_text(stdin)
    if piped:
        return piped
    return body or ""


class PasteCLI:
    """Command-line interface for Paste.me."""
    def __init__(self, config: Optional[PasteConfig] = None):
        """Initialize the CLI with configuration and logging."""
        self.config = config or PasteConfig()
        self.logger = logging.getLogger(__name__)

        # Configure logging with rotation
        log_path = str(Path(self.config.LOG_FILE).resolve())
        if not any(getattr(h, 'baseFilename', None) == log_path for h in self.logger.handlers):
            log_handler = RotatingFileHandler(
                log_path,
                maxBytes=self.config.LOG_MAX_SIZE,
                backupCount=self.config.LOG_BACKUP_COUNT
            )
            log_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
            self.logger.addHandler(log_handler)
        self.logger.setLevel(logging.DEBUG)

        # Log program and dependency versions
        versions = {}
        for dist in ("cryptography", "requests", "colorama"):
            try:
                versions[dist] = metadata.version(dist)
            except metadata.PackageNotFoundError:
                versions[dist] = "unknown"
        self.logger.info(
            f"Starting {PROGRAM_NAME} v{PROGRAM_VERSION}, dependencies: "
            + ", ".join(f"{k}={v}" for k, v in versions.items())
        )

    def _build_parser(self) -> argparse.ArgumentParser:
        valid = ",".join(str(m) for m in self.config.VALID_EXPIRE_MINUTES)
        parser = argparse.ArgumentParser(
            prog="pasteme",
            description=(
                f"{PROGRAM_NAME}: Share your pastes securely.\n"
                f"Version {PROGRAM_VERSION}\n"
                "The paste name and body are encrypted locally with AES-256-GCM before upload.\n"
                "The decryption passphrase only travels in the fragment of the printed URL."
            ),
            epilog=(
                "Examples:\n"
                "  Paste text: pasteme --name todo --body 'buy milk' --expire 60\n"
                "  Paste a file: cat main.py | pasteme --name main.py --expire 1440 --source\n"
                "  One-time paste: pasteme --name secret --body 'read once' --destroy\n"
                "  Inspect request: pasteme --name todo --body 'buy milk' --expire 60 --dry-run --debug"
            ),
            formatter_class=argparse.RawDescriptionHelpFormatter
        )
        parser.add_argument('--name', type=str, default='', help='Insert the name of the paste here.')
        parser.add_argument('--body', type=str, default='',
                            help='Here you can insert the paste body or send it through cli.')
        parser.add_argument('--expire', type=int, default=None,
                            help=('Expiration time for your paste in minutes. '
                                  f'Allowed values for the time being: {valid}.'))
        parser.add_argument('--destroy', action='store_true',
                            help="Post the paste with a 'Self Destruct' flag. The link will work only once.")
        parser.add_argument('--source', action='store_true',
                            help='Post a paste which is source code. Syntax highlighting will be applied.')
        parser.add_argument('--api-url', type=str, help=f'API endpoint (default: {self.config.API_URL})')
        parser.add_argument('--share-url', type=str, help=f'Base of the share URL (default: {self.config.SHARE_URL})')
        parser.add_argument('--timeout', type=float, help='HTTP timeout in seconds (default: none)')
        parser.add_argument('--verbose', action='store_true', help='Enable verbose console output')
        parser.add_argument('--debug', action='store_true', help='Print encrypted envelope details')
        parser.add_argument('--dry-run', action='store_true', help='Print the request instead of sending it')
        parser.add_argument('--version', action='version', version=f"{PROGRAM_NAME} v{PROGRAM_VERSION}")
        return parser

    def _apply_overrides(self, args: argparse.Namespace) -> PasteConfig:
        overrides = {}
        if args.api_url:
            overrides['API_URL'] = args.api_url
        if args.share_url:
            overrides['SHARE_URL'] = args.share_url
        if args.timeout is not None:
            overrides['HTTP_TIMEOUT'] = args.timeout
        return replace(self.config, **overrides) if overrides else self.config

    def _print_startup_info(self, args: argparse.Namespace, config: PasteConfig) -> None:
        """Print startup information to the console."""
        print(f"{Fore.CYAN}{PROGRAM_NAME} v{PROGRAM_VERSION}{Style.RESET_ALL}")
        print(f"API: {config.API_URL}")
        print(f"Expiration: {'self destruct' if args.destroy else f'{args.expire} minutes'}")
        print(f"Source code: {args.source}, Debug: {args.debug}, Dry run: {args.dry_run}")

    def _print_debug_envelope(self, label: str, envelope: Envelope) -> None:
        print(f"{Fore.YELLOW}Envelope for {label}:{Style.RESET_ALL}")
        print(f"  Salt ({len(envelope.salt) // 2} bytes): {envelope.salt}")
        print(f"  IV ({len(envelope.iv) // 2} bytes): {envelope.iv}")
        print(f"  Data ({len(envelope.data) // 2} bytes): {envelope.data[:64]}"
              f"{'...' if len(envelope.data) > 64 else ''}")

    def run(self, argv: Optional[List[str]] = None, stdin: Optional[TextIO] = None) -> int:
        """
        Parse command-line arguments, post the paste and report the outcome.

        Args:
            argv: Arguments (defaults to sys.argv[1:]).
            stdin: Input stream for piped bodies (defaults to sys.stdin).

        Returns:
            int: Process exit status.
        """
        args = self._build_parser().parse_args(argv)
        if stdin is None:
            stdin = sys.stdin
        config = self._apply_overrides(args)
        submitter = PasteSubmitter(config)

        if args.verbose:
            self._print_startup_info(args, config)

        try:
            # The name is checked before stdin is consumed
            submitter.validate_name(args.name)
            body = resolve_body(args.body, stdin)
            submitter.validate(args.name, body, args.expire, args.destroy)
            passphrase = submitter.encryptor.key_manager.generate_passphrase()
            paste = submitter.build(args.name, body, args.expire, args.destroy, args.source, passphrase)

            if args.debug:
                self._print_debug_envelope("name", paste.name)
                self._print_debug_envelope("body", paste.body)

            if args.dry_run:
                print(json.dumps(paste.to_dict(), indent=2))
                print(f"{Fore.YELLOW}Dry run: paste not sent. Passphrase: {passphrase}{Style.RESET_ALL}")
                self.logger.info("Dry run completed, nothing sent")
                return 0

            result = submitter.submit(paste)
        except PasteError as e:
            self.logger.error(f"{type(e).__name__}: {e}")
            print(f"{Fore.RED}{e}{Style.RESET_ALL}")
            return e.exit_code

        print(f"{Fore.GREEN}Paste added successfully!{Style.RESET_ALL}")
        print(f"Share this url to your friends: {submitter.share_url(result, passphrase)}")
        return 0


def main() -> None:
    sys.exit(PasteCLI().run())


if __name__ == "__main__":
    main()

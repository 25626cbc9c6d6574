"""Best-effort classification of shell commands that deserve a human look.

This is a pattern heuristic, not a sandbox. It only decides whether the user is
asked before a command runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from daemon_agent.types import BashApprovalLevel

SENSITIVE_PATHS: tuple[str, ...] = (
    # Credentials and keys
    "~/.ssh",
    "~/.gnupg",
    "~/.gpg",
    "~/.aws",
    "~/.azure",
    "~/.config/gcloud",
    "~/.kube",
    "~/.docker/config.json",
    "~/.npmrc",
    "~/.pypirc",
    "~/.gem/credentials",
    "~/.config/gh",
    "~/.config/hub",
    "~/.netrc",
    "~/.env",
    "~/.envrc",
    "~/.password-store",
    "~/.local/share/keyrings",
    "~/Library/Keychains",
    # Browser profiles
    "~/Library/Application Support/Google/Chrome",
    "~/Library/Application Support/Firefox",
    "~/Library/Application Support/Microsoft Edge",
    "~/Library/Application Support/BraveSoftware",
    "~/Library/Safari",
    "~/.mozilla",
    "~/.config/google-chrome",
    "~/.config/chromium",
    "~/.config/BraveSoftware",
    # Personal data
    "~/Downloads",
    "~/Documents",
    "~/Desktop",
    "~/Pictures",
    "~/Movies",
    "~/Music",
    "~/Library/Messages",
    "~/Library/Mail",
    "~/Library/Calendars",
    "~/Library/Contacts",
    "~/Library/Cookies",
    # Shell and REPL history
    "~/.bash_history",
    "~/.zsh_history",
    "~/.zhistory",
    "~/.history",
    "~/.python_history",
    "~/.node_repl_history",
    "~/.psql_history",
    "~/.mysql_history",
    "~/.sqlite_history",
    "~/.lesshst",
    "~/.local/share/fish/fish_history",
)

SENSITIVE_PATH_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"id_rsa",
        r"id_ed25519",
        r"id_ecdsa",
        r"id_dsa",
        r"authorized_keys",
        r"known_hosts",
        r"\.pem\b",
        r"\.key\b",
        r"private.*key",
        r"\.env(\.|$|\s)",
        r"\.envrc",
        r"aws.*credentials",
        r"aws.*config",
        r"keychain",
        r"keyring",
        r"Login Data",
        r"\bCookies\b",
        r"Web Data",
        r"\bsecurity\s+(find|dump|export)",
    )
)

# Directories under the home directory that commands may inspect freely.
HOME_ALLOWLIST: tuple[str, ...] = (
    "~/projects",
    "~/code",
    "~/dev",
    "~/src",
    "~/repos",
    "~/workspace",
    "~/work",
    "~/.local/bin",
    "~/go",
    "~/bin",
)

_HOME_READERS = r"(?:cat|less|head|tail|more|bat|grep|rg|awk|sed|find|ls|tree|du)"

DANGEROUS_COMMANDS: tuple[str, ...] = (
    # File destruction and process control
    "rm",
    "rmdir",
    "mv",
    "kill",
    "killall",
    "pkill",
    "truncate",
    "shred",
    "wipefs",
    # System state
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
    "init",
    "systemctl",
    "mount",
    "umount",
    "fstab",
    "crontab",
    "iptables",
    "ufw",
    "firewall-cmd",
    # Permissions and identity
    "chmod",
    "chown",
    "chgrp",
    "sudo",
    "su",
    "doas",
    "passwd",
    "useradd",
    "userdel",
    "usermod",
    "groupadd",
    "groupdel",
    "groupmod",
    "visudo",
    # Disks
    "mkfs",
    "fdisk",
    "dd",
    "format",
    # Environment disclosure
    "env",
    "printenv",
    "export",
    # Redirection into files
    ">",
    ">>",
    # Package removal
    "apt remove",
    "apt purge",
    "apt-get remove",
    "apt-get purge",
    "yum remove",
    "dnf remove",
    "pacman -r",
    "brew uninstall",
    "pip uninstall",
    "npm uninstall -g",
    # Destructive tooling
    "git push --force",
    "git push -f",
    "git reset --hard",
    "git clean -fd",
    "docker rm",
    "docker rmi",
    "docker system prune",
    "kubectl delete",
    "terraform destroy",
    "drop database",
    "drop table",
    "delete from",
    "truncate table",
)

DANGEROUS_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\brm\s+(-[a-z]*[rf][a-z]*\s+)*",
        r"\bkill\s+-9\b",
        r"\bsudo\b",
        r"\bsu\s+-?\s*$",
        r"\bsu\s+\w+",
        r"\bchmod\s+[0-7]{3,4}\b",
        r"\bchown\b",
        r"\bdd\s+if=",
        r">\s*/dev/",
        r"\|\s*(ba)?sh\b",
        r"\|.*\bsh\b",
        r"\b(curl|wget)\b.*\|\s*(ba)?sh",
        r"\beval\s+\$",
        r"\$\(.*\)",
        r"`[^`]*`",
        r"^\s*(env|printenv)\s*$",
        r"\bexport\s+-p\b",
        r"\bset\s*\|",
        r"\becho\s+.*\$\w*(KEY|TOKEN|SECRET|PASSWORD|PASS|CREDENTIAL)",
    )
)


@dataclass(frozen=True)
class CommandVerdict:
    dangerous: bool
    sensitive_path_access: bool

    @property
    def requires_approval(self) -> bool:
        return self.dangerous or self.sensitive_path_access


@lru_cache(maxsize=len(DANGEROUS_COMMANDS))
def _word_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)


def is_dangerous_command(command: str) -> bool:
    """True when the command names a destructive verb or matches a risky shape."""
    lowered = command.lower()
    for entry in DANGEROUS_COMMANDS:
        if " " in entry:
            if entry in lowered:
                return True
        elif _word_pattern(entry).search(command):
            return True
    return any(pattern.search(command) for pattern in DANGEROUS_PATTERNS)


def _path_variants(path: str, home: str) -> tuple[str, ...]:
    if not path.startswith("~"):
        return (path,)
    rest = path[1:]
    return (path, f"{home}{rest}", f"$HOME{rest}", f"${{HOME}}{rest}")


def _home_access_pattern(home: str) -> re.Pattern[str]:
    targets = "|".join(re.escape(prefix) for prefix in ("~", home, "$HOME", "${HOME}"))
    return re.compile(rf"\b{_HOME_READERS}\s+[^|;]*?(?:{targets})(?:/[^\s/]+)?/?(?=\s|$)")


def _is_allowlisted(command: str, home: str) -> bool:
    return any(variant in command for entry in HOME_ALLOWLIST for variant in _path_variants(entry, home))


def is_sensitive_path_access(command: str, *, home: str | Path | None = None) -> bool:
    """True when the command touches credentials, personal data or enumerates the home directory."""
    home_dir = str(home if home is not None else Path.home()).rstrip("/")
    for path in SENSITIVE_PATHS:
        if any(variant in command for variant in _path_variants(path, home_dir)):
            return True
    if any(pattern.search(command) for pattern in SENSITIVE_PATH_PATTERNS):
        return True
    if _home_access_pattern(home_dir).search(command) and not _is_allowlisted(command, home_dir):
        return True
    return False


def classify(command: str, *, home: str | Path | None = None) -> CommandVerdict:
    return CommandVerdict(
        dangerous=is_dangerous_command(command),
        sensitive_path_access=is_sensitive_path_access(command, home=home),
    )


def requires_approval(command: str, level: BashApprovalLevel, *, home: str | Path | None = None) -> bool:
    """Decide whether a shell command must be approved under the given level."""
    if level == "all":
        return True
    if level == "none":
        return False
    return classify(command, home=home).requires_approval

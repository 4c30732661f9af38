#!/usr/bin/env python3
# core.py - Command implementations for the enject CLI

import argparse
import getpass
import logging
import secrets
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .config import EnjectConfig, global_store_dir, resolve_store_dir
from .constants import (
    DEFAULT_ENV_FILE,
    DEFAULT_M_COST,
    DEFAULT_P_COST,
    DEFAULT_T_COST,
    ERROR_ALREADY_INITIALIZED,
    ERROR_COULD_NOT_READ_PASSWORD,
    ERROR_EMPTY_PASSWORD,
    ERROR_EMPTY_SECRET,
    ERROR_ENV_FILE_NOT_FOUND,
    ERROR_NO_COMMAND,
    ERROR_PASSWORDS_DO_NOT_MATCH,
    LOCAL_PREFIX,
    SALT_LEN,
)
from .exceptions import (
    ConfigError,
    EnjectError,
    PathValidationError,
    ValidationError,
)
from .kdf import KdfParams
from .runner import run_command
from .secret import SecretString
from .store import PasswordStore, atomic_write_bytes
from .template import (
    Plain,
    count_legacy_references,
    has_global_references,
    parse,
    resolve,
    templatize,
)
from .validation import PathValidator, SecretNameValidator

logger = logging.getLogger(__name__)

PASSWORD_PROMPT = "enject store password: "
GLOBAL_PASSWORD_PROMPT = "enject global store password: "


def _create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    from . import __version__

    parser = argparse.ArgumentParser(
        prog="enject",
        description="Keep secrets out of .env files and inject them at run time",
        epilog="Example: enject run -- npm start",
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce logging output (only errors)",
    )
    verbosity.add_argument(
        "--verbose",
        action="store_true",
        help="Increase logging verbosity (debug details)",
    )

    parser.add_argument(
        "--dir",
        metavar="PATH",
        default=None,
        help="Project root holding the store directory (default: current directory)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
        help="Show program's version number and exit",
    )

    subparsers = parser.add_subparsers(dest="command")

    def _add_global_flag(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "--global",
            dest="use_global",
            action="store_true",
            help="Operate on the global store instead of the project store",
        )

    init_parser = subparsers.add_parser(
        "init",
        help="Initialize a new encrypted store",
        description="Create the store config (salt, KDF parameters) and an empty store",
    )
    _add_global_flag(init_parser)
    init_parser.add_argument(
        "--m-cost", type=int, default=DEFAULT_M_COST, metavar="KIB",
        help=f"Argon2id memory cost in KiB (default: {DEFAULT_M_COST})",
    )
    init_parser.add_argument(
        "--t-cost", type=int, default=DEFAULT_T_COST, metavar="N",
        help=f"Argon2id time cost (default: {DEFAULT_T_COST})",
    )
    init_parser.add_argument(
        "--p-cost", type=int, default=DEFAULT_P_COST, metavar="N",
        help=f"Argon2id parallelism (default: {DEFAULT_P_COST})",
    )

    set_parser = subparsers.add_parser(
        "set",
        help="Add or update a secret",
        description=(
            "Store a secret. The value is read from stdin when piped, "
            "otherwise prompted without echo. Example: pbpaste | enject set api_key"
        ),
    )
    set_parser.add_argument("key", metavar="KEY", help="Secret name")
    _add_global_flag(set_parser)

    list_parser = subparsers.add_parser(
        "list", help="List stored secret names (never values)"
    )
    _add_global_flag(list_parser)

    delete_parser = subparsers.add_parser("delete", help="Delete a secret")
    delete_parser.add_argument("key", metavar="KEY", help="Secret name")
    _add_global_flag(delete_parser)

    import_parser = subparsers.add_parser(
        "import",
        help="Move plain values of a .env file into the store",
        description=(
            "Store every KEY=value line of FILE under KEY and rewrite FILE "
            f"in place with KEY={LOCAL_PREFIX}KEY references"
        ),
    )
    import_parser.add_argument("file", metavar="FILE", help="Plaintext .env file")

    rotate_parser = subparsers.add_parser(
        "rotate", help="Re-encrypt the store under a new password"
    )
    _add_global_flag(rotate_parser)

    run_parser = subparsers.add_parser(
        "run",
        help="Resolve the .env template and run a command with it",
        description="Example: enject run -- npm start",
    )
    run_parser.add_argument(
        "--env-file",
        metavar="PATH",
        default=None,
        help=f"Template file (default: {DEFAULT_ENV_FILE} in the project root)",
    )
    run_parser.add_argument(
        "cmd", nargs=argparse.REMAINDER, metavar="CMD", help="Command to run"
    )

    return parser


def _prompt_secret(prompt: str) -> SecretString:
    """Prompt for a secret without echo."""
    try:
        return SecretString(getpass.getpass(prompt))
    except EOFError:
        raise ValidationError(ERROR_COULD_NOT_READ_PASSWORD)


def _prompt_new_password() -> SecretString:
    """Prompt twice for a new password; both entries must match."""
    password = _prompt_secret("New enject store password: ")
    with _prompt_secret("Confirm enject store password: ") as confirm:
        if password != confirm:
            password.wipe()
            raise ValidationError(ERROR_PASSWORDS_DO_NOT_MATCH)
    if not password:
        raise ValidationError(ERROR_EMPTY_PASSWORD)
    return password


def _read_secret_value(key: str) -> SecretString:
    """Read a secret from piped stdin, falling back to a no-echo prompt."""
    value: Optional[SecretString] = None
    try:
        if not sys.stdin.isatty():
            piped = sys.stdin.read()
            if piped:
                value = SecretString(piped.strip("\n\r"))
    except (OSError, ValueError):
        # stdin closed or not readable; prompt instead
        value = None

    if not value:
        value = _prompt_secret(f"Value for '{key}': ")
    if not value:
        raise ValidationError(ERROR_EMPTY_SECRET)
    return value


def _project_root(dir_arg: Optional[str]) -> Path:
    return Path(dir_arg).expanduser() if dir_arg else Path.cwd()


def _store_config(project_root: Path, use_global: bool) -> EnjectConfig:
    if use_global:
        return EnjectConfig(global_store_dir())
    return EnjectConfig(resolve_store_dir(project_root))


def _unlock(
    config: EnjectConfig, prompt: str = PASSWORD_PROMPT
) -> Tuple[PasswordStore, SecretString]:
    """Open and unlock the store described by ``config``."""
    store = config.open_store()
    password = _prompt_secret(prompt)
    try:
        store.unlock(password)
    except EnjectError:
        password.wipe()
        raise
    return store, password


def _cmd_init(*, config: EnjectConfig, params: KdfParams) -> None:
    """Implement `enject init`: write config and create an empty store."""
    if config.exists():
        raise ConfigError(ERROR_ALREADY_INITIALIZED.format(path=config.store_dir))

    params.validate()
    salt = secrets.token_bytes(SALT_LEN)

    with _prompt_new_password() as password:
        config.write(salt, params)
        store = PasswordStore.create_empty(config.store_path, params, salt, password)
        store.lock()

    print(f"Initialized enject store in {config.store_dir}.")
    print()
    print("  1. Add a secret:       enject set some_api_key")
    print(f"  2. Reference in .env:  API_KEY={LOCAL_PREFIX}some_api_key")
    print("  3. Run your app:       enject run -- npm start")


def _cmd_set(*, config: EnjectConfig, key: str) -> None:
    """Implement `enject set`."""
    key = SecretNameValidator.validate_secret_name(key)
    store, password = _unlock(config)
    with store, password:
        with _read_secret_value(key) as value:
            store.set(key, value)
        store.save(password)
    logger.info("Saved secret '%s' to %s", key, config.store_path)
    print(f"Secret '{key}' saved.")


def _cmd_list(*, config: EnjectConfig) -> List[str]:
    """Implement `enject list`. Prints names only."""
    store, password = _unlock(config)
    with store, password:
        keys = store.list()
    if keys:
        print("\n".join(keys))
    else:
        print("No secrets stored. Add one with: enject set <key>")
    return keys


def _cmd_delete(*, config: EnjectConfig, key: str) -> bool:
    """Implement `enject delete`. The store is only rewritten if the key existed."""
    store, password = _unlock(config)
    with store, password:
        removed = store.delete(key)
        if removed:
            store.save(password)
    if removed:
        print(f"Secret '{key}' deleted.")
    else:
        print(f"Secret '{key}' not found.")
    return removed


def _cmd_rotate(*, config: EnjectConfig) -> None:
    """Implement `enject rotate`: unlock with the current password, save with a new one."""
    store, old_password = _unlock(config, "Current enject store password: ")
    with store, old_password:
        print("Enter a new enject store password.")
        with _prompt_new_password() as new_password:
            store.save(new_password)
    logger.info("Rotated password of %s", config.store_path)
    print("enject store password rotated successfully.")


def _read_template(path: Path) -> str:
    validated = PathValidator.validate_file_path(str(path))
    try:
        return validated.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ValidationError(f"Failed to read '{validated}'", e)


def _cmd_import(*, config: EnjectConfig, file: str) -> int:
    """
    Implement `enject import`.

    Every plain KEY=value line is stored under KEY, the store is saved, and
    the file is then rewritten in place as a template. Lines that already
    hold references are left as they are.
    """
    path = Path(file).expanduser()
    text = _read_template(path)
    lines = parse(text)

    plain_lines = [line for line in lines if isinstance(line, Plain)]
    for line in plain_lines:
        SecretNameValidator.validate_secret_name(line.key)

    store, password = _unlock(config)
    with store, password:
        for line in plain_lines:
            if store.get(line.key) is not None:
                logger.info("Overwriting existing secret '%s'", line.key)
            store.set(line.key, line.value)
        store.save(password)

    output = "\n".join(templatize(lines))
    if text.endswith("\n"):
        output += "\n"
    atomic_write_bytes(path, output.encode("utf-8"))

    print(
        f"Imported {len(plain_lines)} secret(s). "
        f"{path} rewritten as {LOCAL_PREFIX} template."
    )
    return len(plain_lines)


def _resolve_environment(
    project_root: Path, env_file: Optional[str]
) -> Dict[str, str]:
    """Parse the template and resolve it against the local and global stores."""
    env_path = Path(env_file).expanduser() if env_file else project_root / DEFAULT_ENV_FILE
    if not env_path.exists():
        raise PathValidationError(ERROR_ENV_FILE_NOT_FOUND.format(path=env_path))

    lines = parse(_read_template(env_path))

    legacy = count_legacy_references(lines)
    if legacy:
        logger.warning(
            "%s contains %d legacy ev:// reference(s). Update to %s to silence this warning.",
            env_path,
            legacy,
            LOCAL_PREFIX,
        )

    local_store, local_password = _unlock(_store_config(project_root, use_global=False))
    with local_store, local_password:
        global_secrets: Mapping[str, SecretString] = {}
        global_store: Optional[PasswordStore] = None
        if has_global_references(lines):
            global_config = EnjectConfig(global_store_dir())
            if global_config.exists():
                global_store, global_password = _unlock(global_config, GLOBAL_PASSWORD_PROMPT)
                global_password.wipe()
                global_secrets = global_store.as_mapping()
            else:
                logger.debug("No global store at %s", global_config.store_dir)
        try:
            return resolve(lines, local_store.as_mapping(), global_secrets)
        finally:
            if global_store is not None:
                global_store.lock()


def _cmd_run(*, project_root: Path, env_file: Optional[str], cmd: List[str]) -> int:
    """Implement `enject run`. Returns the child's exit code."""
    if cmd and cmd[0] == "--":
        cmd = cmd[1:]
    if not cmd:
        raise ValidationError(ERROR_NO_COMMAND)

    env = _resolve_environment(project_root, env_file)
    try:
        return run_command(cmd, env)
    finally:
        env.clear()


def _handle_error(error) -> None:
    """Handle errors with appropriate messaging. Let the CLI decide exit codes."""
    error_type = type(error).__name__
    logger.error("%s: %s", error_type, error)
    if getattr(error, "original_exception", None):
        logger.debug("  Original error: %s", error.original_exception)
    # Re-raise to let the CLI layer map to exit codes
    raise error


def _configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, dispatch the subcommand and return the exit code."""
    parser = _create_argument_parser()
    args = parser.parse_args(argv)

    _configure_logging(args)

    command = getattr(args, "command", None)
    if command is None:
        parser.print_help(sys.stderr)
        return 1

    project_root = _project_root(args.dir)
    use_global = bool(getattr(args, "use_global", False))

    try:
        if command == "init":
            _cmd_init(
                config=_store_config(project_root, use_global),
                params=KdfParams(args.m_cost, args.t_cost, args.p_cost),
            )
        elif command == "set":
            _cmd_set(config=_store_config(project_root, use_global), key=args.key)
        elif command == "list":
            _cmd_list(config=_store_config(project_root, use_global))
        elif command == "delete":
            _cmd_delete(config=_store_config(project_root, use_global), key=args.key)
        elif command == "import":
            _cmd_import(config=_store_config(project_root, False), file=args.file)
        elif command == "rotate":
            _cmd_rotate(config=_store_config(project_root, use_global))
        elif command == "run":
            return _cmd_run(
                project_root=project_root, env_file=args.env_file, cmd=list(args.cmd)
            )
    except EnjectError as e:
        _handle_error(e)

    return 0


if __name__ == "__main__":
    sys.exit(main())

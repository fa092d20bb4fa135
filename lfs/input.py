from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from rich.console import Console
from rich.prompt import Prompt, PromptBase

from lfs.errors import MissingInputError
from lfs.validations import (
  validate_hostname,
  validate_password,
  validate_username,
)

console = Console()

T = TypeVar("T")


class IntegerPrompt(PromptBase[int]):
  response_type = int
  validate_error_message = "\n[prompt.invalid]Please enter a valid integer number"
  illegal_choice_message = "\n[prompt.invalid.choice]Please select one of the available options"


class ValidatedPrompt:
  """
  A text prompt that repeats until `validator` accepts the answer.

  When `required` names the answer, an empty answer is fatal instead of
  being asked again.
  """

  validator: Callable[[str], bool] = staticmethod(bool)
  error: str = "Invalid value, please try again."
  password: bool = False
  required: str | None = None

  @classmethod
  def _ask_once(cls, message: str, default: str | None = None) -> str:
    kwargs: dict[str, Any] = {"password": cls.password}
    if default is not None:
      kwargs["default"] = default
    return Prompt.ask(message, **kwargs)

  @classmethod
  def ask(cls, message: str, default: str | None = None) -> str:
    while True:
      answer = cls._ask_once(message, default)
      if cls.required and not answer.strip():
        raise MissingInputError(cls.required)
      if cls.validator(answer):
        return answer
      console.print(f"\n[prompt.invalid]{cls.error}[/]")


class HostnamePrompt(ValidatedPrompt):
  validator = staticmethod(validate_hostname)
  error = "Invalid hostname - must follow RFC 1123 (letters, digits, hyphens)."


class UsernamePrompt(ValidatedPrompt):
  validator = staticmethod(validate_username)
  error = "Invalid username - use lowercase letters, digits, hyphen or underscore (not root or lfs)."
  required = "username"


class PasswordPrompt(ValidatedPrompt):
  """Hidden input, asked twice."""

  validator = staticmethod(validate_password)
  error = "Invalid password - it must not contain ':' or a line break."
  required = "password"
  password = True

  @classmethod
  def ask(cls, message: str, default: str | None = None) -> str:
    while True:
      password = super().ask(message)
      if cls._ask_once("Verify the password") == password:
        return password
      console.print("\n[prompt.invalid]Passwords don't match, please try again.[/]")


def ask_menu(title: str, message: str, options: Sequence[tuple[str, T]]) -> T:
  """Print a numbered menu and return the value of the chosen entry. The first entry is the default."""
  console.print()
  console.print(f"{title}:")
  for i, (label, _) in enumerate(options, start=1):
    console.print(f" {i}. {label}")

  choices = [str(i) for i in range(1, len(options) + 1)]
  choice = IntegerPrompt.ask(message, choices=choices, default=1)
  return options[choice - 1][1]

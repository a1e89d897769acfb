"""Exceptions for molehill."""


class MolehillError(Exception):
    """Base class for molehill errors."""


class MoleNotFoundError(MolehillError):
    """The Mole CLI could not be located in any candidate location."""


class UpdateCheckError(MolehillError):
    """The release feed could not be fetched or parsed."""

"""
Bot command tools.

This package defines the classes and utility functions used to define bot commands and to run command chains.

Commands
========
A :class:`Command` wraps a function that is called with the following signature::

    function(event, *arguments)

Commands are usually built with the :func:`command` decorator, which works out how many arguments the function takes
from its signature::

    @registry.command('echo')
    @alias('say')
    def echo(event, *words):
        return " ".join(words)

Whatever the function returns becomes the command's result.

Registries
==========
A :class:`Registry` maps names and aliases to commands and runs them on behalf of a chain, reporting argument count
errors, permission problems and the like back to the caller.

Command Chains
==============
A chain is a line of text running one or more commands, each receiving the result of the one before it.  See
:mod:`chainbot.commands.chain` for the syntax.  :func:`process_chain` is the entry point.
"""
from .exc import *
from .core import *
from .permissions import *
from .commands import *
from .chain import *

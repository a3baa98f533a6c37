"""Built-in CLI sub-commands for restcache.

* :mod:`~restcache.commands.cache` -- ``fetch``, ``lookup``, ``stats`` and
  the ``exclusions`` group.
* :mod:`~restcache.commands.jobs` -- run a background job once, start the
  scheduler, read job logs.
* :mod:`~restcache.commands.config` -- view and modify global settings.
"""

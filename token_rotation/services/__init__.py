"""
token_rotation.services
=======================

Service layer of the rotation core. Import concrete services from their
modules (e.g. :mod:`token_rotation.services.rotation.service`); this package
stays import-free so infrastructure modules can depend on
:mod:`token_rotation.services._shared` without cycles.
"""

"""
Writing assistant core package.

This package currently focuses on the source material subsystem: reference
documents attached to a writing project are converted to plain text in the
background, tracked through a processing lifecycle, assembled under a word
budget into the context handed to the generation service, and searched on
demand with a grep-style scan.
"""

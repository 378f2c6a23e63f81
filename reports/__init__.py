"""Printable reports built from the hospital stores."""

"""Web views over the hospital stores."""

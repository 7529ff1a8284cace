"""Project configuration package for the clinic backend."""

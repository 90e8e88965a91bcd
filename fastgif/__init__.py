"""fastgif: stream a remote video through ffmpeg and gifski, serve the GIF."""

__version__ = "0.1.0"

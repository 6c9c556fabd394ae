"""Meeting minutes from live microphone audio, uploaded files and YouTube videos."""

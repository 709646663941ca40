"""Real-time channel: packet numbering, dispatch and the Socket.IO server."""

"""Defines constants for the SNTP exchange.

Packet layout offsets, the protocol version and mode sent in requests, and
the default validation thresholds applied to responses.
"""

# NTP protocol version written into requests.
kNtpVersion = 3

# Mode value for a client request.
kNtpClientMode = 3

# Modes accepted in a response (server, broadcast).
kNtpServerMode = 4
kNtpBroadcastMode = 5

# Default NTP port number.
kNtpPort = 123

# Size of an SNTP packet without extension fields or authenticator.
kNtpPacketSize = 48

# Byte offsets of fields inside the packet.
kIndexVersion = 0
kIndexRootDelay = 4
kIndexRootDispersion = 8
kIndexReceiveTime = 32
kIndexTransmitTime = 40

# Seconds between 1900-01-01 (NTP epoch) and 1970-01-01 (Unix epoch):
# 70 years plus 17 leap days.
kNtpToUnixEpochSeconds = ((365 * 70) + 17) * 24 * 60 * 60

# Leap indicator value for an unsynchronized server.
kLeapUnsynchronized = 3

kMinStratum = 1
kMaxStratum = 15

# Default validation thresholds, in milliseconds.
kDefaultRootDelayMaxMs = 100.0
kDefaultRootDispersionMaxMs = 100.0
kDefaultMaxResponseDelayMs = 200

# A response arriving this long after its request is rejected.
kMaxElapsedSinceRequestMs = 10_000

# Tolerated disagreement between the wall clock and monotonic clock offsets.
kClockDisagreementToleranceMs = 10

kDefaultTimeoutSeconds = 30.0

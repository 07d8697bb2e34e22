from prometheus_client import Counter, Gauge, Histogram

poll_duration_seconds = Histogram('poll_duration_seconds', 'Duration of a Twitch polling cycle')
poll_errors_total = Counter('poll_errors_total', 'Number of poll cycles that failed to fetch a snapshot')
last_poll_timestamp = Gauge('last_poll_timestamp', 'Unix timestamp of last successful poll')

stream_live = Gauge('stream_live', 'Last known liveness of the tracked broadcaster (0=offline,1=live)')
stream_events_total = Counter('stream_events_total', 'Classified stream events', ['event'])

announcement_edits_total = Counter('announcement_edits_total', 'Announcement edit attempts by outcome', ['outcome'])
announcement_state = Gauge('announcement_state', 'State of the announcement (0=idle,1=announced,2=updating)')
announcements_sent_total = Counter('announcements_sent_total', 'Messages posted to the channel', ['kind'])

ANNOUNCEMENT_STATE_CODES = {
    'idle': 0,
    'announced': 1,
    'updating': 2,
}

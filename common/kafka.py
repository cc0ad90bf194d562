from confluent_kafka import Producer

TOPIC_NOTIFICATIONS = "notifications"

def create_producer(bootstrap: str) -> Producer:
    return Producer({"bootstrap.servers": bootstrap, "enable.idempotence": True})

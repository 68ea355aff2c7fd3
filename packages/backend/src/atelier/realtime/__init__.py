"""Real-time infrastructure — in-process event bus + Server-Sent Events.

Learn: Events flow through two hops:
1. Services → EventBus.publish (synchronous, in-memory fan-out)
2. EventBus subscription → SseStream → StreamingResponse → browser

Publishing is fire-and-forget. If nobody is listening the event is
dropped; the frontend can always refetch over the REST API to catch up.
Each browser tab holds one long-lived stream per channel.
"""

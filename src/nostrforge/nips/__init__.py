"""Nostr Implementation Possibilities -- protocol codecs, builders and lookups.

The NIPs layer sits in the middle of the diamond DAG, depending on
[nostrforge.models][nostrforge.models], [nostrforge.core][nostrforge.core]
and [nostrforge.utils][nostrforge.utils]. Apart from the NIP-05 lookup it
performs no I/O: builders return unsigned templates and parsers read events
already fetched by the [RelayPool][nostrforge.utils.transport.RelayPool].

Attributes:
    nip05: ``name@domain`` lookup through ``/.well-known/nostr.json``.
    nip13: Proof-of-work nonce mining.
    nip19: bech32 identifiers (``npub``, ``nprofile``, ``note``, ``nevent``,
        ``naddr``) and free-text reference classification.
    nip22: Comment threads on collaboration objects.
    nip34: Git collaboration builders, status state machine and parsing.
    nip46: Remote signer (bunker) messages.
    nip65: Relay list metadata (gossip).

See Also:
    [nostrforge.services.engine][nostrforge.services.engine]: Drives the
        build, mine, sign and publish pipeline over these modules.
"""

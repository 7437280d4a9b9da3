"""Transaction assembly and signing helpers."""

import logging
from typing import Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.transaction import Transaction, VersionedTransaction

from splcustody.errors import SigningError

logger = logging.getLogger(__name__)


def build_transaction(
    instructions: Sequence[Instruction],
    payer: Keypair,
    signers: Sequence[Keypair],
    blockhash: Hash,
) -> Transaction:
    """Compile and sign a legacy transaction.

    Args:
        instructions: Instructions in execution order
        payer: Fee payer, always signs
        signers: Additional required signers
        blockhash: Recent blockhash

    Raises:
        SigningError: If the signer set does not match the required signers
    """
    message = Message.new_with_blockhash(list(instructions), payer.pubkey(), blockhash)

    keypairs = [payer]
    for signer in signers:
        if signer.pubkey() not in [k.pubkey() for k in keypairs]:
            keypairs.append(signer)

    required = set(message.account_keys[: message.header.num_required_signatures])
    provided = {k.pubkey() for k in keypairs}
    if required != provided:
        missing = ", ".join(str(p) for p in required - provided)
        extra = ", ".join(str(p) for p in provided - required)
        raise SigningError(f"Signer mismatch (missing: [{missing}], unexpected: [{extra}])")

    try:
        return Transaction(keypairs, message, blockhash)
    except Exception as e:
        raise SigningError(f"Failed to sign transaction: {e}") from e


def sign_versioned_transaction(serialized: bytes, signer: Keypair) -> VersionedTransaction:
    """Sign a serialized versioned transaction produced by a third party.

    Raises:
        SigningError: If the payload cannot be decoded or signed
    """
    try:
        unsigned = VersionedTransaction.from_bytes(serialized)
        return VersionedTransaction(unsigned.message, [signer])
    except Exception as e:
        raise SigningError(f"Failed to sign versioned transaction: {e}") from e

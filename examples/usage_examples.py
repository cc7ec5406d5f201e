"""
Examples of using markovseq.

The wireless-network scenario: a link is either clear or jammed, and each
packet is received ("OK") or lost ("LOSS"). A mismatched model is trained
on sequences drawn from the true one and the two are compared.
"""

import tempfile
from enum import Enum

from rich.console import Console
from rich.table import Table

console = Console()


class Packet(Enum):
    OK = 0
    LOSS = 1


def build_packet_model():
    """Build the reference model one entry at a time."""
    from markovseq import CategoricalEmission, HMMBuilder

    builder = HMMBuilder(2)

    builder.set_initial(0, 0.95)
    builder.set_initial(1, 0.05)

    builder.set_emission(0, CategoricalEmission([0.95, 0.05], list(Packet)))
    builder.set_emission(1, CategoricalEmission([0.20, 0.80], list(Packet)))

    builder.set_transition(0, 1, 0.05)
    builder.set_transition(0, 0, 0.95)
    builder.set_transition(1, 0, 0.10)
    builder.set_transition(1, 1, 0.90)

    return builder.build()


def build_initial_guess():
    """Starting point for Baum-Welch."""
    from markovseq import CategoricalEmission, HMMBuilder

    return (
        HMMBuilder(2)
        .set_initial_distribution([0.5, 0.5])
        .set_transition_row(0, [0.8, 0.2])
        .set_transition_row(1, [0.2, 0.8])
        .set_emission(0, CategoricalEmission([0.8, 0.2], list(Packet)))
        .set_emission(1, CategoricalEmission([0.1, 0.9], list(Packet)))
        .build()
    )


def print_model(title, model):
    table = Table(title=title)
    table.add_column("State", justify="right")
    table.add_column("Pi")
    table.add_column("Aij")
    table.add_column("P(OK)")

    for i in range(model.n_states):
        table.add_row(
            str(i),
            f"{model.initial(i):.3f}",
            " ".join(f"{p:.3f}" for p in model.transition_matrix[i]),
            f"{model.emission(i).density(Packet.OK):.3f}"
        )

    console.print(table)


def example_learn_packet_model():
    """Generate data, train 10 iterations and compare distances."""
    from markovseq import BaumWelchLearner, SequenceGenerator, distance

    console.print("[bold]Example: learning the packet-loss model[/bold]")

    hmm = build_packet_model()
    learnt = build_initial_guess()
    print_model("Reference model", hmm)

    sequences = SequenceGenerator(random_state=42).generate_many(hmm, length=100, count=200)

    learner = BaumWelchLearner()
    for i in range(10):
        console.print(f"Distance at iteration {i}: "
                      f"{distance(learnt, hmm, random_state=i):.5f}")
        learnt = learner.iterate(learnt, sequences)

    console.print(f"Resulting distance: {distance(learnt, hmm, random_state=10):.5f}")
    print_model("Learnt model", learnt)

    return learnt


def example_decode_and_score():
    """Score sequences and decode the most likely state path."""
    from markovseq import most_likely_state_sequence

    console.print("[bold]Example: scoring and decoding[/bold]")

    hmm = build_packet_model()
    burst = [Packet.OK] * 4 + [Packet.LOSS] * 3 + [Packet.OK] * 2

    console.print(f"P(OK, OK, LOSS) = {hmm.probability([Packet.OK, Packet.OK, Packet.LOSS]):.6f}")
    console.print(f"P(OK, OK, OK)   = {hmm.probability([Packet.OK, Packet.OK, Packet.OK]):.6f}")

    path, log_p = most_likely_state_sequence(hmm, burst)
    console.print(f"Most likely states for a loss burst: {path} (log p = {log_p:.3f})")


def example_export(model):
    """Export a trained model as JSON and read it back."""
    from markovseq import ModelExporter

    console.print("[bold]Example: exporting models[/bold]")

    exporter = ModelExporter()
    with tempfile.TemporaryDirectory() as tmpdir:
        path = exporter.export_json(model, f"{tmpdir}/packet_loss.json", {'iterations': 10})
        console.print(f"Exported to {path}")

        document = exporter.read_document(path)
        console.print(f"Document describes {document['n_states']} states, exported at "
                      f"{document['metadata']['exported_at']}")

        reloaded = exporter.import_json(path)
        console.print(f"Reloaded model:\n{reloaded}")


if __name__ == "__main__":
    learnt_model = example_learn_packet_model()
    example_decode_and_score()
    example_export(learnt_model)

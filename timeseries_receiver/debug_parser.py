import argparse
import io
import json
import sys

from timeseries_receiver.compression import PayloadError, decompress_body
from timeseries_receiver.decoder import DecodeError, decode_samples
from timeseries_receiver.metrics import assemble_metrics


def main(argv=None):
    """
    Tries to decode a payload file saved by the receiver
    (RECEIVER_PAYLOAD_DUMP_DIR) or captured from an agent.
    """
    parser = argparse.ArgumentParser(description="Decode a timeseries binary payload")
    parser.add_argument("filename", help="path to payload .bin file")
    parser.add_argument("--snappy", action="store_true",
                        help="payload is snappy framed, as saved by the receiver or sent by an agent")
    parser.add_argument("--limit", type=int, default=2, help="number of series to print")
    args = parser.parse_args(argv)

    try:
        with open(args.filename, "rb") as f:
            data = f.read()
    except FileNotFoundError:
        print(f"Error: File '{args.filename}' not found.")
        return 1

    try:
        print(f"Attempting to decode {len(data)} bytes from '{args.filename}'...")
        if args.snappy:
            data = decompress_body(data)
        samples = decode_samples(io.BytesIO(data))
    except (PayloadError, DecodeError) as e:
        print("\n--- FAILED to decode the payload ---")
        print(f"Error: {e} ({getattr(e, 'cause', 'invalid-compression')})")
        return 1

    metrics = assemble_metrics(samples)
    print(f"Successfully decoded {len(samples)} samples in {len(metrics.series)} series!")

    print(f"\n--- Decoded Data (first {args.limit} series) ---")
    shown = metrics.to_dict()
    shown['metrics'] = shown['metrics'][:args.limit]
    print(json.dumps(shown, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

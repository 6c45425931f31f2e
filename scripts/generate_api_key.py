import argparse
import sys

from live_mosaic.services.auth import KEY_LIFETIME_DAYS, create_api_key


def main(args):
    parser = argparse.ArgumentParser(description="Create an api key for the live-mosaic admin endpoints.")
    parser.add_argument("-s", "--secret", help="JWT Secret for Encoding", type=str, required=True)
    parser.add_argument("-d", "--days", help="Lifetime of the key in days", type=int, default=KEY_LIFETIME_DAYS)
    args = parser.parse_args(args)
    print(create_api_key(args.secret, lifetime_days=args.days))


if __name__ == "__main__":
    main(sys.argv[1:])

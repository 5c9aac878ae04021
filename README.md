# pcskit

Tools for downloading large files over HTTP with many connections at once.

pcskit splits a file into byte ranges and hands them to parallel workers. A
monitor watches their progress, splits the remaining work of slow workers,
reconnects stalled or failed ones and records where each range got to, so an
interrupted download can be resumed from a state file. Around this sit the
small utilities the work needs: size formatting and parsing, speed
measurement, rate limiting, file checksums, streamed multipart bodies, a
bounded wait group and a retrying task executor.

## Installation

```
pip install pcskit
```

Python 3.10 or newer is required.

## Command line

Download a URL into a local file with the default settings (five parallel
connections and an 8 KiB cache per connection):

```
pcskit-download https://example.com/file.bin -o file.bin
```

Options:

- `-o`, `--output` – file to save to
- `-p`, `--parallel` – maximum number of connections (default 5)
- `--cache-size` – download buffer size in bytes (default 8192)
- `--max-rate` – maximum bytes per second (0 means no limit)
- `--block-mode` – split the file into fixed-size blocks instead of one range per connection
- `--state-path` – file that keeps the resume state; it is removed after a successful download
- `--test` – download without saving

While the transfer runs, a status line shows the bytes received, the total
size, the current speed and the time elapsed. The exit status is 0 on success
and 1 on error.

## Library use

### Downloading

```python
from pcskit.dlcommon import Config, open_downloader_writer
from pcskit.downloader import Downloader, do_download

# The one-call form that the command uses:
do_download("https://example.com/file.bin", "file.bin", None)

# Or with more control:
cfg = Config(max_parallel=8)
cfg.fix()
with open_downloader_writer("file.bin") as out:
    der = Downloader("https://example.com/file.bin", out, cfg)
    der.add_load_balance_server("https://mirror.example.com/file.bin")
    der.execute()
```

The writer must offer `write_at(data, offset)`; `open_downloader_writer`
gives one backed by a file. `Downloader.execute()` raises the error that
stopped the download. `pause()`, `resume()` and `cancel()` may be called from
another thread while `execute()` runs, and callbacks such as `on_success`,
`on_finish` and `on_download_status` are plain attributes.

### Byte ranges

```python
from pcskit.transfer import new_range_list_gen_block_size

gen = new_range_list_gen_block_size(1024, 0, 256)
while not gen.is_done():
    index, r = gen.gen_range()
    print(index, r.show_details())
```

`new_range_list_gen_default(total_size, begin, count, parallel)` divides the
file evenly between a fixed number of connections instead.

### Sizes

```python
from pcskit.converter import convert_file_size, parse_file_size_str

parse_file_size_str("1k")       # 1024
convert_file_size(1536, 2)      # '1.50KB'
```

### Checksums

```python
from pcskit.checksum import ChecksumFlag, get_file_sum

lfc = get_file_sum("file.bin", ChecksumFlag.MD5 | ChecksumFlag.CRC32, 256 * 1024)
print(lfc.meta.md5.hex(), lfc.meta.crc32)
```

`ChecksumFlag.SLICE_MD5` adds the MD5 of the first `slice_size` bytes in
`lfc.meta.slice_md5`.

### Speed and rate limiting

```python
from pcskit.speeds import RateLimit, Speeds

limit = RateLimit(100 * 1024)   # bytes per interval
limit.add(4096)                 # blocks while the current interval is spent
limit.stop()

speeds = Speeds()
speeds.add(4096)
print(speeds.get_speeds())
```

### Multipart bodies

```python
from pcskit.multipart import MultipartReader
from pcskit.rio import FileReaderLen64

mr = MultipartReader()
with open("file.bin", "rb") as fh:
    mr.add_form_file("file", "file.bin", FileReaderLen64(fh))
    mr.close_multipart()
    print(mr.content_type, mr.length())
    body = mr.read()
```

### HTTP requests

`pcskit.requester.HTTPClient` sends requests with a browser user agent, a
cookie jar and a timeout; `post` may be bytes, text, a mapping (sent
form-encoded) or a readable object. `set_global_proxy()` sets a proxy for
clients that have none of their own.

### Running tasks with retries

`pcskit.taskframework.TaskExecutor` runs `TaskUnit` objects with a bounded
number running at once. It retries a unit up to its `max_retry` count and
calls the unit's `on_success`, `on_failed`, `on_retry` and `on_complete` hooks.

## Debug output

Call `pcskit.verbose.set_verbose(True)`, or set the environment variable
`PCSKIT_VERBOSE=1`, to write timestamped diagnostic lines to standard error.

## What it does not do

pcskit has no uploader: it can build multipart bodies, but it does not split
files into upload blocks or drive a multi-part upload. It is not a client for
any particular storage service, and resume state is stored as JSON only.

## Running the tests

```
pip install -e ".[test]"
pytest
```
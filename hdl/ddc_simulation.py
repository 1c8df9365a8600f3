"""
DDC Simulation
==============

Generates a noisy RF tone with interferers, pushes it through the receiver
model and reports how well it was brought down to baseband.  Optionally
writes test vectors for an HDL testbench and plots the spectra.

    ddc-simulate --samples 4096 --rf-freq 25e6 --ddc-freq 25e6 --plot ddc.png
"""
import argparse
import logging
import numpy as np
from scipy import signal

from ddc import freq_to_fcw, nco_reference
from fir import quantize_coefficients
from receiver import Receiver, receiver_config

logger = logging.getLogger(__name__)

simulation_config = dict(
        sample_rate=100e6,
        samples=4096,
        rf_freq=25e6,
        rf_amplitude=0.8,
        noise_db=-60.,
        interferers=((30e6, 0.3), (40e6, 0.2)),
        ddc_freq=25e6,
        cordic_iterations=12,
        channel_taps=15,
        channel_cutoff=2e6,
        cic_decimation=4,
        fir_decimation=2,
        decimation_taps=16,
        settle=8,
        seed=None)

def generate_rf_signal(sample_rate, count, rf_freq, rf_amplitude=0.8,
        noise_db=-60., interferers=(), seed=None):
    """A real tone in white noise plus interfering tones.

    :returns: A ``(signal, noise)`` tuple of float arrays.
    """
    rng = np.random.default_rng(seed)
    t = np.arange(count) / sample_rate
    x = rf_amplitude * np.cos(2 * np.pi * rf_freq * t)
    noise = 10 ** (noise_db / 20.) * rng.standard_normal(count)
    for freq, amplitude in interferers:
        x = x + amplitude * np.cos(2 * np.pi * freq * t)
    return x + noise, noise

def quantize_signal(x, bits=16):
    """Scale ``x`` into a signed ``bits`` wide integer, backing off if the
    peak is over full scale."""
    full_scale = 2 ** (bits - 1) - 1
    peak = np.max(np.abs(x)) if len(x) else 0.
    if peak > 1.:
        logger.info('input peaks at %.2f, scaling to full scale', peak)
        x = x / peak
    return np.clip(np.round(x * full_scale), -full_scale - 1,
            full_scale).astype(np.int32)

def design_lowpass(numtaps, cutoff_hz, sample_rate):
    """A Hamming windowed low pass, quantized to the coefficient format."""
    taps = signal.firwin(numtaps, cutoff_hz, fs=sample_rate)
    return quantize_coefficients(taps)

def spectrum(x, sample_rate):
    """The power spectrum of ``x`` in dB, with frequencies from ``-fs/2``."""
    nfft = 1 << int(np.ceil(np.log2(max(len(x), 1))))
    X = np.fft.fftshift(np.fft.fft(x, nfft))
    frq = np.fft.fftshift(np.fft.fftfreq(nfft, 1. / sample_rate))
    power = np.abs(X) ** 2
    power_db = 10 * np.log10(power / np.max(power) + 1e-300)
    return frq, power_db

def peak_frequency(x, sample_rate):
    """The frequency of the strongest spectral line of ``x``."""
    frq, power_db = spectrum(x, sample_rate)
    return frq[np.argmax(power_db)]

def tone_to_residual_db(x):
    """Power at the strongest FFT bin over the power in all the others."""
    X = np.fft.fft(x)
    power = np.abs(X) ** 2
    peak = np.argmax(power)
    residual = np.sum(power) - power[peak]
    return 10 * np.log10(power[peak] / max(residual, 1e-300))

def snr_db(signal_power, noise_power):
    return 10 * np.log10(signal_power / noise_power)

def write_test_vectors(filename, rf, cosine, sine, i, **header):
    """Write ``rf cos sin i`` rows, at most 1000 of them.

    :param filename: Where to write.
    :param header: Written as ``// key: value`` comment lines.
    """
    with open(filename, 'w') as f:
        f.write('// DDC Test Vectors\n')
        for key in sorted(header):
            f.write('// %s: %s\n' % (key, header[key]))
        f.write('\n')
        for row in zip(rf[:1000], cosine[:1000], sine[:1000], i[:1000]):
            f.write('%d %d %d %d\n' % tuple([int(v) for v in row]))

def plot_results(filename, sample_rate, rf, out_c, out_rate):
    import matplotlib as mpl
    mpl.use('Agg')
    import matplotlib.pyplot as plt

    f = plt.figure('ddc_simulation', figsize=(12, 8))
    plt.subplot(2, 2, 1, title='RF in')
    plt.plot(rf[:1000], 'b-')
    plt.xlabel('Sample')

    plt.subplot(2, 2, 2, title='RF spectrum')
    frq, power_db = spectrum(rf, sample_rate)
    plt.plot(frq / 1e6, power_db, 'b')
    plt.xlabel('Freq (MHz)')
    plt.ylabel('Attenuation (dB)')
    plt.ylim(-120, 0)

    plt.subplot(2, 2, 3, title='Baseband spectrum')
    frq, power_db = spectrum(out_c, out_rate)
    plt.plot(frq / 1e6, power_db, 'r')
    plt.xlabel('Freq (MHz)')
    plt.ylim(-120, 0)

    plt.subplot(2, 2, 4, title='Constellation')
    plt.plot(out_c.real, out_c.imag, 'b.')
    plt.axis('equal')

    plt.savefig(filename)
    plt.close(f)

def make_receiver(options, fcw, enable_decimation=True):
    """A receiver loaded and configured from ``simulation_config`` style
    ``options``.  With decimation off the output is the channel filter's, one
    sample per RF sample."""
    sample_rate = options['sample_rate']
    cic_decimation = options['cic_decimation']
    fir_decimation = options['fir_decimation']
    receiver = Receiver(cordic_iterations=options['cordic_iterations'])
    receiver.load_coefficients(
            channel_taps=design_lowpass(options['channel_taps'],
                options['channel_cutoff'], sample_rate),
            decimation_taps=design_lowpass(options['decimation_taps'],
                sample_rate / cic_decimation / fir_decimation / 2.,
                sample_rate / cic_decimation))
    receiver.configure(
            frequency_word=fcw,
            cic_decimation=cic_decimation,
            fir_decimation=fir_decimation,
            fir_taps=options['channel_taps'],
            fir_symmetric=options['channel_taps'] % 2 == 1,
            enable_ddc=True,
            enable_fir=True,
            enable_decimation=enable_decimation)
    return receiver

def run_simulation(**kwargs):
    """Run the receiver on a generated RF signal.

    Takes the keyword arguments of ``simulation_config``, plus ``vectors``
    and ``plot`` file names.

    :returns: A dict summarizing the run.
    """
    options = dict(simulation_config, **kwargs)
    sample_rate = options['sample_rate']

    rf, noise = generate_rf_signal(sample_rate, options['samples'],
            options['rf_freq'], options['rf_amplitude'], options['noise_db'],
            options['interferers'], options['seed'])
    rf_samples = quantize_signal(rf)

    fcw = freq_to_fcw(options['ddc_freq'], sample_rate=sample_rate,
            phase_accumulator_bitwidth=receiver_config['phase_bits'])
    receiver = make_receiver(options, fcw)
    logger.info('fcw=%d locked=%s', fcw, receiver.locked)

    out_i, out_q = receiver.process(rf_samples)
    out_rate = sample_rate / (options['cic_decimation'] * options['fir_decimation'])
    settled = slice(options['settle'], None)
    out_c = out_i[settled] + 1j * out_q[settled]

    results = dict(
            fcw=fcw,
            input_samples=len(rf_samples),
            output_samples=len(out_i),
            input_snr_db=snr_db(options['rf_amplitude'] ** 2 / 2.,
                np.mean(noise ** 2)),
            output_peak_hz=peak_frequency(out_c, out_rate) if len(out_c) else np.nan,
            output_tone_to_residual_db=tone_to_residual_db(out_c) if len(out_c) else np.nan,
            mean_i=float(np.mean(out_i[settled])) if len(out_c) else np.nan,
            mean_q=float(np.mean(out_q[settled])) if len(out_c) else np.nan)

    if options.get('vectors'):
        count = min(len(rf_samples), 1000)
        sine, cosine = nco_reference(fcw, count,
                cordic_iterations=options['cordic_iterations'])
        filtered_i, filtered_q = make_receiver(options, fcw,
                enable_decimation=False).process(rf_samples[:count])
        write_test_vectors(options['vectors'], rf_samples, cosine, sine,
                filtered_i,
                sample_rate='%.1f MHz' % (sample_rate / 1e6),
                rf_frequency='%.1f MHz' % (options['rf_freq'] / 1e6),
                ddc_frequency='%.1f MHz' % (options['ddc_freq'] / 1e6),
                columns='rf cos sin filtered_i',
                samples=count)
        logger.info('test vectors saved to %s', options['vectors'])

    if options.get('plot') and len(out_c):
        plot_results(options['plot'], sample_rate, rf, out_c, out_rate)
        logger.info('plot saved to %s', options['plot'])

    return results

def main():
    parser = argparse.ArgumentParser(description='Simulate the DDC receiver on a generated RF signal')
    parser.add_argument('-n', '--samples', type=int, default=simulation_config['samples'])
    parser.add_argument('-r', '--rate', dest='sample_rate', type=float, default=simulation_config['sample_rate'])
    parser.add_argument('--rf-freq', type=float, default=simulation_config['rf_freq'])
    parser.add_argument('--ddc-freq', type=float, default=simulation_config['ddc_freq'])
    parser.add_argument('--noise', dest='noise_db', type=float, default=simulation_config['noise_db'])
    parser.add_argument('--iterations', dest='cordic_iterations', type=int, default=simulation_config['cordic_iterations'])
    parser.add_argument('--taps', dest='channel_taps', type=int, default=simulation_config['channel_taps'])
    parser.add_argument('--cic-decim', dest='cic_decimation', type=int, default=simulation_config['cic_decimation'])
    parser.add_argument('--fir-decim', dest='fir_decimation', type=int, default=simulation_config['fir_decimation'])
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--vectors', default=None, help='write test vectors to this file')
    parser.add_argument('--plot', default=None, help='save a plot to this file')
    parser.add_argument('-v', '--verbose', action='store_true', default=False)
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    options = vars(args)
    del options['verbose']
    results = run_simulation(**options)

    print('=== DDC Simulation Summary ===')
    for key in sorted(results):
        print('%s: %s' % (key, results[key]))

if __name__ == '__main__':
    main()
